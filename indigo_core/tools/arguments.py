"""工具参数访问器。

模型给出的参数是任意嵌套的 JSON 值（JsonValue）。工具不直接对 dict 做
isinstance 判断，而是通过 ToolArguments 的类型化访问器取值：
取值成功返回 Python 原生类型，失败抛出带错误码的 ToolArgumentError。
"""

from typing import Any, Dict, List, Mapping, Optional, Union

from indigo_core.domain.exceptions import ToolArgumentError

JsonValue = Union[None, bool, int, float, str, List["JsonValue"], Dict[str, "JsonValue"]]

_MISSING = object()


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class ToolArguments:
    """一次动作的参数集合。"""

    def __init__(self, values: Optional[Mapping[str, JsonValue]] = None):
        self._values: Dict[str, JsonValue] = dict(values or {})

    def __contains__(self, name: str) -> bool:
        return self._values.get(name) is not None

    def raw(self) -> Dict[str, JsonValue]:
        return dict(self._values)

    # ---- 类型化访问器 ----

    def string(self, name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
        value = self._fetch(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # 模型偶尔把 issue 编号之类的值写成数字
            return str(value)
        raise self._invalid(name, "string", value)

    def integer(self, name: str, required: bool = True, default: Optional[int] = None) -> Optional[int]:
        value = self._fetch(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, bool):
            raise self._invalid(name, "integer", value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                try:
                    return int(float(text))
                except ValueError:
                    pass
        raise self._invalid(name, "integer", value)

    def boolean(self, name: str, required: bool = True, default: Optional[bool] = None) -> Optional[bool]:
        value = self._fetch(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        raise self._invalid(name, "boolean", value)

    def mapping(
        self, name: str, required: bool = True, default: Optional[Dict[str, JsonValue]] = None
    ) -> Optional[Dict[str, JsonValue]]:
        value = self._fetch(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, dict):
            return dict(value)
        raise self._invalid(name, "object", value)

    def string_list(
        self, name: str, required: bool = True, default: Optional[List[str]] = None
    ) -> Optional[List[str]]:
        value = self._fetch(name, required)
        if value is _MISSING:
            return default
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return list(value)
        raise self._invalid(name, "array of strings", value)

    # ---- 辅助方法 ----

    def _fetch(self, name: str, required: bool) -> Any:
        value = self._values.get(name)
        if value is None:
            if required:
                raise ToolArgumentError(
                    code="MISSING_ARGUMENT",
                    message=f"Missing required parameter: {name}",
                    parameter=name,
                )
            return _MISSING
        return value

    @staticmethod
    def _invalid(name: str, expected: str, value: Any) -> ToolArgumentError:
        return ToolArgumentError(
            code="INVALID_ARGUMENT",
            message=f"Invalid type for parameter '{name}': expected {expected}, got {_type_name(value)}",
            parameter=name,
        )

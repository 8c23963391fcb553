"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Agent 循环、API 层或 UI 层做统一捕获与用户提示。

错误分为几类：
- ModelError 及其子类：模型后端调用失败，会中止本轮目标（Turn）。
- ToolError 及其子类：某个工具执行失败，可恢复，作为观察结果反馈给模型。
- ParseError：模型回复中的 ACTION 载荷格式错误，可恢复，仅记录日志并跳过。
- SafetyLimitError / CancellationError：循环被安全上限或用户取消终止。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "JIRA_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


# ---- 模型后端 ----


class ModelError(BusinessError):
    """模型后端调用失败的基类，会直接中止当前 Turn，不在循环内自动重试。"""


class NetworkError(ModelError):
    """网络层错误，例如连接失败、超时等。"""


class AuthenticationError(ModelError):
    """凭证缺失、过期或被拒绝（401/403）。"""


class RateLimitError(ModelError):
    """Provider 限流或配额耗尽（429），由上层负责重试/退避策略。"""


class ApiError(ModelError):
    """第三方 API 返回非 2xx/429 错误，或响应体无法解析时抛出。"""


# ---- 工具与远端服务 ----


class ToolError(BusinessError):
    """工具执行失败。"""


class ToolArgumentError(ToolError):
    """工具参数缺失或类型不符。"""


class DuplicateToolError(ToolError):
    """同名工具重复注册。"""


class JiraError(BusinessError):
    """Jira REST 调用失败（网络、认证、404、字段无效等）。"""


# ---- 循环控制 ----


class ParseError(BusinessError):
    """模型回复中的 ACTION 载荷无法解析。"""


class SafetyLimitError(BusinessError):
    """单个 Turn 的迭代次数达到安全上限。"""


class CancellationError(BusinessError):
    """用户主动取消当前 Turn。"""


class TurnInProgressError(BusinessError):
    """同一会话已有进行中的 Turn，且冲突策略为 reject。"""

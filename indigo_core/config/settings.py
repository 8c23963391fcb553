"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
优先级：初始化参数 > 环境变量 > .env > config.yaml > secrets 目录。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


RISK_NAMES = {"read_only", "mutating", "destructive"}


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("INDIGO_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class PydanticSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(
        default="vertex",
        description="默认使用的 Provider 名称，例如 vertex、openai",
    )
    default_model: str = Field(
        default="indigo-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    model_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="生成温度")
    max_output_tokens: int = Field(default=2048, ge=64, description="单次回复最大输出 token 数")

    # Vertex AI (Gemini)
    vertex_project_id: Optional[str] = Field(default=None, description="GCP 项目 ID")
    vertex_region: str = Field(default="us-central1", description="Vertex AI 区域")
    vertex_credentials_file: str = Field(
        default="~/.config/gcloud/application_default_credentials.json",
        description="gcloud application-default 凭证文件路径",
    )
    vertex_access_token: Optional[str] = Field(
        default=None,
        description="直接指定的 OAuth access token，设置后不再读取凭证文件",
    )
    # OpenAI 兼容接口
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI 兼容接口的 API 密钥")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口基础URL",
    )

    # ---- Jira ----
    jira_base_url: Optional[str] = Field(default=None, description="Jira 站点地址，如 https://acme.atlassian.net")
    jira_email: Optional[str] = Field(default=None, description="Jira 账号邮箱")
    jira_api_key: Optional[str] = Field(default=None, description="Jira API token")
    jira_epic_field: str = Field(default="customfield_10014", description="Epic Link 自定义字段 ID")
    jira_sprint_field: str = Field(default="customfield_10020", description="Sprint 自定义字段 ID")
    jira_classification_field: Optional[str] = Field(
        default=None, description="级联分类（Classification）自定义字段 ID"
    )
    jira_pcm_field: Optional[str] = Field(default=None, description="PCM 资产对象自定义字段 ID")

    # ---- 通用 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- Agent 循环 ----
    max_iterations: int = Field(
        default=5,
        ge=1,
        le=20,
        description="单个目标内模型-工具循环的最大迭代次数（硬上限 20）",
    )
    bulk_confirmation_threshold: int = Field(
        default=5,
        ge=0,
        description="一批动作中可变更类动作超过该数量时需要用户确认",
    )
    confirmation_timeout: float = Field(
        default=300.0,
        gt=0,
        description="等待用户确认的超时时间（秒），超时视为拒绝",
    )
    max_context_messages: int = Field(default=10, ge=0, le=100, description="最大历史对话消息数")
    max_visible_items: int = Field(default=20, ge=0, le=200, description="上下文中列出的可见 issue 上限")
    turn_conflict_policy: Literal["replace", "reject"] = Field(
        default="replace",
        description="同一会话有进行中的目标时，新目标是取消并替换(replace)还是拒绝(reject)",
    )
    tool_risk_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="按工具名覆盖风险等级：read_only / mutating / destructive",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "jira_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("tool_risk_overrides")
    @classmethod
    def validate_risk_overrides(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = {name: risk for name, risk in v.items() if risk not in RISK_NAMES}
        if unknown:
            raise ValueError(f"Unknown risk level(s): {unknown}")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = PydanticSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = PydanticSettings

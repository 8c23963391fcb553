"""Indigo 助手 Agent 的专用包装。

按配置自动装配 JiraClient、工具目录、风险确认规则与循环引擎，
对 UI 暴露 run / cancel / confirm 等便捷接口。
"""

from typing import Optional

from indigo_core.agents.loop_engine import AgenticLoopEngine, config_from_settings
from indigo_core.config.settings import settings
from indigo_core.domain.loop import LoopState, TurnOutcome
from indigo_core.flows.confirmation import ConfirmationRequester
from indigo_core.flows.guard import ConfirmationGuard
from indigo_core.flows.state import ProgressSink, StateProvider
from indigo_core.jira.client import JiraClient
from indigo_core.providers import create_provider
from indigo_core.providers.base import ProviderClient
from indigo_core.tools.catalog import ToolCatalog
from indigo_core.tools.jira_tools import build_jira_catalog


class IndigoAgent:
    """Indigo 助手的便捷包装类。"""

    def __init__(
        self,
        jira_client: Optional[JiraClient] = None,
        provider_client: Optional[ProviderClient] = None,
        catalog: Optional[ToolCatalog] = None,
        progress: Optional[ProgressSink] = None,
        confirmation_requester: Optional[ConfirmationRequester] = None,
        model_name: Optional[str] = None,
    ):
        """初始化 Indigo Agent。

        Args:
            jira_client: Jira 客户端（可选，默认按配置创建）。Agent 持有强引用，
                工具只持有弱引用
            provider_client: Provider 客户端实例（可选，默认按配置创建）
            catalog: 工具目录（可选，默认注册全部 Jira 工具）
            progress: 进度回调 (message, kind)
            confirmation_requester: 需要确认时调用的协程函数 (reason, detail) -> bool；
                不提供时由 UI 调用 confirm() 推入结果
            model_name: 逻辑模型名，默认取配置
        """
        self._jira = jira_client or JiraClient(settings)
        provider_client = provider_client or create_provider()
        self._catalog = catalog or build_jira_catalog(self._jira)

        config = config_from_settings(getattr(provider_client, "name", None) or settings.default_provider)
        if model_name:
            config.model = model_name
        guard = ConfirmationGuard.from_catalog(
            self._catalog,
            bulk_threshold=config.bulk_threshold,
            overrides=settings.tool_risk_overrides,
        )
        self._engine = AgenticLoopEngine(
            provider_client=provider_client,
            catalog=self._catalog,
            guard=guard,
            config=config,
            progress=progress,
            confirmation_requester=confirmation_requester,
        )

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def engine(self) -> AgenticLoopEngine:
        return self._engine

    async def run(
        self,
        goal: str,
        conversation_id: str = "default",
        state_provider: Optional[StateProvider] = None,
    ) -> TurnOutcome:
        """执行一个目标。

        Args:
            goal: 用户目标
            conversation_id: 会话ID
            state_provider: 返回当前 UI 状态快照的回调

        Returns:
            TurnOutcome
        """
        return await self._engine.run_turn(conversation_id, goal, state_provider)

    def cancel(self, conversation_id: str = "default") -> bool:
        return self._engine.cancel(conversation_id)

    def confirm(self, approved: bool, conversation_id: str = "default") -> bool:
        return self._engine.resolve_confirmation(conversation_id, approved)

    def active_state(self, conversation_id: str = "default") -> Optional[LoopState]:
        return self._engine.active_state(conversation_id)

    def clear_history(self, conversation_id: str = "default") -> None:
        self._engine.clear_conversation(conversation_id)

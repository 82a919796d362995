"""对外 API 服务模块。

提供简化的函数接口供上层应用调用。
"""

from typing import Any, Dict, List, Optional

from cortex_agent.agents.orchestrator import AgentOrchestrator
from cortex_agent.agents.request_builder import RequestBuilder
from cortex_agent.config.settings import settings
from cortex_agent.domain.conversation import ConversationSnapshot, ConversationStateStore
from cortex_agent.domain.models import FetchedTableBlock, Message
from cortex_agent.infrastructure.logging.logger import logger
from cortex_agent.providers import create_clients
from cortex_agent.tools.definitions import build_tool_config


_orchestrator: Optional[AgentOrchestrator] = None


def create_orchestrator(cfg=None, store: Optional[ConversationStateStore] = None) -> AgentOrchestrator:
    """按配置组装编排器：客户端、token 提供方、工具集与状态存储。"""

    cfg = cfg or settings
    agent_client, sql_client, token_provider = create_clients(cfg)
    return AgentOrchestrator(
        store=store or ConversationStateStore(),
        agent_client=agent_client,
        sql_client=sql_client,
        token_provider=token_provider,
        request_builder=RequestBuilder(build_tool_config(cfg), cfg),
        cfg=cfg,
    )


def get_default_orchestrator() -> AgentOrchestrator:
    """获取默认编排器实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_orchestrator()
    return _orchestrator


def run_chat(user_input: str) -> Dict[str, Any]:
    """运行一次对话 exchange。

    Args:
        user_input: 用户输入内容

    Returns:
        包含 exchange 状态、完整对话记录与通知的字典
    """
    orchestrator = get_default_orchestrator()
    outcome = orchestrator.submit(user_input)
    if outcome.error is not None:
        logger.warning(f"Exchange failed: {outcome.error.message}", extra={"extra": {
            "exchange_id": outcome.exchange_id,
            "code": outcome.error.code,
        }})
    result = snapshot_to_dict(orchestrator.store.get_snapshot())
    result["exchange_id"] = outcome.exchange_id
    result["status"] = outcome.status
    return result


def message_to_dict(message: Message) -> Dict[str, Any]:
    """与请求体不同，这里保留 fetched_table 块，供渲染使用。"""

    return {
        "id": message.id,
        "role": message.role,
        "synthetic": message.synthetic,
        "content": [block.to_payload() for block in message.content],
    }


def snapshot_to_dict(snapshot: ConversationSnapshot) -> Dict[str, Any]:
    return {
        "state": snapshot.state.value,
        "latest_assistant_message_id": snapshot.latest_assistant_message_id,
        "messages": [message_to_dict(m) for m in snapshot.messages],
        "notifications": [
            {"level": n.level, "message": n.message, "code": n.code} for n in snapshot.notifications
        ],
    }


def fetched_tables(message: Message) -> List[FetchedTableBlock]:
    return [b for b in message.content if isinstance(b, FetchedTableBlock)]

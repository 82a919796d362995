"""Cortex Agent 对话客户端顶层包。

该包把用户的自然语言输入转换为与远端 Cortex Agent 的多轮交互：
流式渲染 Agent 的回答，在 Agent 生成 SQL 时自动执行查询，
并把结果交给第二轮 Agent 调用生成最终回答。
"""

from cortex_agent.agents.orchestrator import AgentOrchestrator, ExchangeOutcome
from cortex_agent.api.service import create_orchestrator, run_chat
from cortex_agent.domain.conversation import ConversationStateStore

__all__ = [
    "AgentOrchestrator",
    "ConversationStateStore",
    "ExchangeOutcome",
    "create_orchestrator",
    "run_chat",
]

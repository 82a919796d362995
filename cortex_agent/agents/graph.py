"""Exchange 的 LangGraph 状态图。

节点：
- submit: 发送一轮请求，响应头就绪后为新的助手消息分配 id。
- stream: 读取事件流并累加内容，直到终止标记或出现需要执行的 SQL。
- execute_query: 执行 SQL，把结果表格内联到当前助手消息。
- synthesize: 追加合成的 SQL 结果消息并构建下一轮请求，然后回到 submit。

嵌套的第二轮对话复用 submit/stream 节点，只是换了请求和助手消息 id。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, TypedDict

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from cortex_agent.domain.models import TableData
from cortex_agent.providers.base import AgentRequest

if TYPE_CHECKING:
    from cortex_agent.agents.orchestrator import AgentOrchestrator


class ExchangeState(TypedDict, total=False):
    """在节点之间传递的 exchange 状态。"""

    exchange: Any
    request: AgentRequest
    assistant_message_id: Optional[str]
    statement: Optional[str]
    table_data: Optional[TableData]
    query_rounds: int
    nested: bool
    done: bool


def exchange_router(state: ExchangeState) -> str:
    if state.get("statement"):
        return "execute_query"
    return "end"


def build_exchange_graph(orchestrator: "AgentOrchestrator") -> CompiledStateGraph:
    graph = StateGraph(ExchangeState)
    graph.add_node("submit", lambda s: orchestrator.submit_node(s))
    graph.add_node("stream", lambda s: orchestrator.stream_node(s))
    graph.add_node("execute_query", lambda s: orchestrator.execute_query_node(s))
    graph.add_node("synthesize", lambda s: orchestrator.synthesize_node(s))
    graph.set_entry_point("submit")
    graph.add_edge("submit", "stream")
    graph.add_conditional_edges("stream", exchange_router, {"execute_query": "execute_query", "end": END})
    graph.add_edge("execute_query", "synthesize")
    graph.add_edge("synthesize", "submit")
    return graph.compile()


def recursion_limit(max_query_rounds: int) -> int:
    """每轮 SQL 会多走 submit/stream/execute_query/synthesize 四个节点。"""

    return 4 * (max_query_rounds + 1) + 2

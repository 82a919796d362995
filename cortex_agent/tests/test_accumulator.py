import pytest

from cortex_agent.agents.accumulator import MessageAccumulator
from cortex_agent.domain.conversation import ConversationStateStore
from cortex_agent.domain.models import (
    ChartBlock,
    FetchedTableBlock,
    Message,
    TableData,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    user_text_message,
)


def _setup():
    store = ConversationStateStore()
    store.append_message(user_text_message("q", message_id="u1"))
    return store, MessageAccumulator(store), Message(id="a1", role="assistant")


def test_text_deltas_concatenate_in_order():
    store, acc, msg = _setup()
    for piece in ["Hel", "lo", ", ", "world"]:
        acc.append_text(msg, piece)

    stored = store.get_message("a1")
    assert len(stored.content) == 1
    assert stored.content[0].text == "Hello, world"
    # 重复发布不会改变对话长度
    assert [m.id for m in store.messages()] == ["u1", "a1"]


def test_text_after_tool_use_starts_new_block():
    store, acc, msg = _setup()
    acc.append_text(msg, "a")
    acc.append_tool_use(msg, ToolUseBlock(name="analyst1"))
    acc.append_text(msg, "b")
    types = [type(b) for b in store.get_message("a1").content]
    assert types == [TextBlock, ToolUseBlock, TextBlock]


def test_tool_result_returns_query_text():
    _, acc, msg = _setup()
    sql = acc.append_tool_result(
        msg, ToolResultBlock(name="analyst1", content=[{"type": "json", "json": {"sql": "SELECT 1"}}])
    )
    assert sql == "SELECT 1"
    assert acc.append_tool_result(msg, ToolResultBlock(name="search1")) is None


def test_apply_dispatch_and_fetched_table():
    store, acc, msg = _setup()
    acc.apply(msg, ChartBlock(spec={"chart_spec": "{}"}))
    acc.append_fetched_table(msg, TableData(statement_handle="h", columns=["A"], rows=[[1]]), inline=True)
    content = store.get_message("a1").content
    assert isinstance(content[0], ChartBlock)
    assert isinstance(content[1], FetchedTableBlock) and content[1].inline

    with pytest.raises(TypeError):
        acc.apply(msg, object())

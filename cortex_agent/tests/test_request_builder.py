from cortex_agent.agents.request_builder import RequestBuilder, remove_fetched_table_from_messages
from cortex_agent.domain.models import (
    FetchedTableBlock,
    Message,
    TableData,
    TextBlock,
    ToolResultBlock,
    sql_exec_message,
    user_text_message,
)
from cortex_agent.tools.definitions import ToolConfig


class SettingsStub:
    agent_model = "claude-3-5-sonnet"


def _table(handle="h1"):
    return TableData(statement_handle=handle, columns=["REGION"], rows=[["east"]])


def _first_turn():
    assistant = Message(
        id="a1",
        role="assistant",
        content=[
            ToolResultBlock(name="analyst1", content=[{"type": "json", "json": {"sql": "SELECT 1"}}]),
            FetchedTableBlock(data=_table(), inline=True),
        ],
    )
    return [user_text_message("q", message_id="u1"), assistant, sql_exec_message("h1", message_id="s1")]


def test_fetched_tables_are_stripped_and_synthetic_last_message_kept():
    history = remove_fetched_table_from_messages(_first_turn())
    assert [m.id for m in history] == ["u1", "a1", "s1"]
    assert not any(isinstance(b, FetchedTableBlock) for m in history for b in m.content)


def test_synthetic_message_omitted_after_inline_table():
    messages = _first_turn() + [
        Message(id="a2", role="assistant", content=[TextBlock(text="summary")]),
        user_text_message("next", message_id="u2"),
    ]
    history = remove_fetched_table_from_messages(messages)
    assert [m.id for m in history] == ["u1", "a1", "a2", "u2"]


def test_message_left_empty_is_dropped_and_input_untouched():
    only_table = Message(id="a1", role="assistant", content=[FetchedTableBlock(data=_table())])
    messages = [user_text_message("q", message_id="u1"), only_table]
    history = remove_fetched_table_from_messages(messages)
    assert [m.id for m in history] == ["u1"]
    assert isinstance(only_table.content[0], FetchedTableBlock)


def test_build_body_and_headers():
    config = ToolConfig(
        tool_resources={"search1": {"search_service": "old", "max_results": 10}},
        search_service="db.schema.svc",
        experimental={"EnableRelatedQueries": True},
    )
    builder = RequestBuilder(config, SettingsStub())
    request = builder.build(_first_turn(), "tok")

    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["X-Snowflake-Authorization-Token-Type"] == "KEYPAIR_JWT"
    body = request.body
    assert body["model"] == "claude-3-5-sonnet"
    assert body["experimental"] == {"EnableRelatedQueries": True}
    assert body["tool_resources"]["search1"] == {"search_service": "db.schema.svc", "max_results": 10}
    assert [t["tool_spec"]["name"] for t in body["tools"]] == ["search1", "analyst1", "data_to_chart", "sql_exec"]
    assert body["messages"][-1]["content"][0]["tool_results"]["content"][0]["json"] == {"query_id": "h1"}
    # 原配置不被覆盖
    assert config.tool_resources["search1"]["search_service"] == "old"


def test_build_is_idempotent():
    builder = RequestBuilder(ToolConfig(), SettingsStub())
    messages = _first_turn()
    assert builder.build(messages, "tok").body == builder.build(messages, "tok").body
    assert "experimental" not in builder.build(messages, "tok").body

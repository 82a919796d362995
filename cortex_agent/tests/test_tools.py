from cortex_agent.tools.definitions import (
    CORTEX_ANALYST_TOOL,
    CORTEX_SEARCH_TOOL,
    SEARCH_SERVICE_PLACEHOLDER,
    build_tool_config,
)


class SettingsStub:
    semantic_model_path = "@db.schema.stage/model.yaml"
    search_service_path = "db.schema.svc"
    search_max_results = 5
    disable_search_tool = False
    disable_analyst_tool = False
    enable_related_queries = True


def test_default_tool_config():
    config = build_tool_config(SettingsStub())
    assert config.tool_resources == {
        "analyst1": {"semantic_model_file": "@db.schema.stage/model.yaml"},
        "search1": {"search_service": "db.schema.svc", "max_results": 5},
    }
    assert config.search_service == "db.schema.svc"
    assert config.experimental == {"EnableRelatedQueries": True}
    assert config.tools[0].to_payload() == {"tool_spec": {"type": "cortex_search", "name": "search1"}}


def test_disabled_tools_have_no_resources():
    cfg = SettingsStub()
    cfg.disable_search_tool = True
    cfg.disable_analyst_tool = True
    cfg.enable_related_queries = False
    config = build_tool_config(cfg)
    assert CORTEX_SEARCH_TOOL not in config.tools
    assert CORTEX_ANALYST_TOOL not in config.tools
    assert config.tool_resources == {}
    assert config.search_service is None
    assert config.experimental == {}


def test_placeholder_search_service_is_ignored():
    cfg = SettingsStub()
    cfg.search_service_path = SEARCH_SERVICE_PLACEHOLDER
    cfg.semantic_model_path = None
    config = build_tool_config(cfg)
    assert CORTEX_SEARCH_TOOL in config.tools
    assert config.tool_resources == {}
    assert config.search_service is None

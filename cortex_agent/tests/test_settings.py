import pytest
from pydantic import ValidationError

from cortex_agent.config.settings import Settings


def test_yaml_config_is_loaded(monkeypatch, tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(
        "snowflake_url: https://acct.snowflakecomputing.com/\n"
        "semantic_model_path: '@db.schema.stage/model.yaml'\n"
        "max_query_rounds: 2\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("AGENT_CONFIG_FILE", str(path))
    monkeypatch.delenv("SNOWFLAKE_URL", raising=False)
    monkeypatch.delenv("MAX_QUERY_ROUNDS", raising=False)

    cfg = Settings(_env_file=None)

    assert cfg.snowflake_url == "https://acct.snowflakecomputing.com"
    assert cfg.semantic_model_path == "@db.schema.stage/model.yaml"
    assert cfg.max_query_rounds == 2


def test_environment_overrides_yaml(monkeypatch, tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text("sql_timezone: UTC\n", encoding="utf-8")
    monkeypatch.setenv("AGENT_CONFIG_FILE", str(path))
    monkeypatch.setenv("SQL_TIMEZONE", "Asia/Shanghai")

    assert Settings(_env_file=None).sql_timezone == "Asia/Shanghai"


def test_invalid_log_level(monkeypatch):
    monkeypatch.setenv("AGENT_CONFIG_FILE", "/nonexistent/agent.yaml")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")

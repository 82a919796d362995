"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("AGENT_CONFIG_FILE")
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


class Settings(BaseSettings):
    """客户端配置（使用 Pydantic）。"""

    # ---- Snowflake 账户与端点 ----
    snowflake_url: str = Field(default="", description="账户基础 URL，例如 https://<account>.snowflakecomputing.com")
    agent_run_path: str = Field(default="/api/v2/cortex/agent:run", description="Agent 运行端点")
    statements_path: str = Field(default="/api/v2/statements", description="SQL 语句执行端点")
    agent_model: str = Field(default="claude-3-5-sonnet", description="请求体中的模型名")
    user_agent: str = Field(default="cortex-agent-client/1.0", description="SQL 调用使用的 User-Agent")

    # ---- 认证（只读取现成的 token，不负责签发） ----
    auth_token: Optional[str] = Field(default=None, description="KEYPAIR_JWT bearer token")
    auth_token_file: Optional[str] = Field(default=None, description="token 文件路径，refresh 时重新读取")

    # ---- 工具与资源 ----
    semantic_model_path: Optional[str] = Field(default=None, description="Analyst 工具的语义模型文件")
    search_service_path: Optional[str] = Field(default=None, description="Search 工具的服务名")
    search_max_results: int = Field(default=10, ge=1, description="Search 工具返回条数上限")
    disable_search_tool: bool = Field(default=False)
    disable_analyst_tool: bool = Field(default=False)
    enable_related_queries: bool = Field(default=True, description="experimental.EnableRelatedQueries")
    search_tool_name: str = Field(default="search1", description="不触发 STREAMING 切换的检索工具名")

    # ---- SQL 输出格式 ----
    sql_timezone: str = Field(default="America/Los_Angeles", description="结果集统一使用的时区")

    # ---- 网络与编排 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    stream_read_timeout: Optional[float] = Field(
        default=None,
        description="流式读取超时（秒），为空表示一直等待",
    )
    streaming_settle_delay: float = Field(
        default=0.0,
        ge=0.0,
        description="工具调用帧之后切换到 STREAMING 前的等待时间（秒）",
    )
    max_query_rounds: int = Field(default=1, ge=0, le=5, description="单次 exchange 内最多执行的 SQL 次数")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("snowflake_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = (v or "INFO").upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

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


settings = Settings()

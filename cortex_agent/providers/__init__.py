"""Snowflake 集成层。

该包下的模块负责：
- 定义协作方抽象接口 (base)。
- 维护端点与固定请求参数 (registry)。
- 解析 SSE 事件流 (event_stream)。
- Agent 运行端点、SQL API 与 token 的具体实现。
"""

from typing import Tuple

from cortex_agent.config.settings import settings
from cortex_agent.providers.agent_client import CortexAgentClient
from cortex_agent.providers.auth import SettingsTokenProvider
from cortex_agent.providers.sql_client import SnowflakeSqlClient


def create_clients(cfg=None) -> Tuple[CortexAgentClient, SnowflakeSqlClient, SettingsTokenProvider]:
    """根据配置创建 Agent / SQL 客户端与 token 提供方，默认使用全局 settings。"""

    cfg = cfg or settings
    return CortexAgentClient(cfg), SnowflakeSqlClient(cfg), SettingsTokenProvider(cfg)

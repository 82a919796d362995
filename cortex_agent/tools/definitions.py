"""Agent 工具集定义。

Cortex Agent 的工具由服务端执行（检索、文本转 SQL、生成图表），客户端只负责：
- 在请求体中声明工具（tool_spec）。
- 为需要资源的工具提供 tool_resources（语义模型文件、检索服务名等）。
- 唯一由客户端执行的是 sql_exec：见编排器。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


ANALYST_TOOL_NAME = "analyst1"
SEARCH_TOOL_NAME = "search1"
SEARCH_SERVICE_PLACEHOLDER = "your_search_service_name"


@dataclass(frozen=True)
class ToolSpec:
    """一个工具声明，序列化为 {"tool_spec": {"type": ..., "name": ...}}。"""

    type: str
    name: str

    def to_payload(self) -> Dict[str, Any]:
        return {"tool_spec": {"type": self.type, "name": self.name}}


CORTEX_ANALYST_TOOL = ToolSpec(type="cortex_analyst_text_to_sql", name=ANALYST_TOOL_NAME)
CORTEX_SEARCH_TOOL = ToolSpec(type="cortex_search", name=SEARCH_TOOL_NAME)
DATA_TO_CHART_TOOL = ToolSpec(type="data_to_chart", name="data_to_chart")
SQL_EXEC_TOOL = ToolSpec(type="sql_exec", name="sql_exec")

DEFAULT_TOOLS = (CORTEX_SEARCH_TOOL, CORTEX_ANALYST_TOOL, DATA_TO_CHART_TOOL, SQL_EXEC_TOOL)


@dataclass
class ToolConfig:
    """请求构建需要的工具配置。

    - tools: 声明给 Agent 的工具列表。
    - tool_resources: 按工具名索引的资源配置，如 {"search1": {"search_service": ...}}。
    - search_service: 非空时，每次请求都会强制写入 tool_resources.search1.search_service。
    - experimental: 原样放入请求体的实验开关。
    """

    tools: List[ToolSpec] = field(default_factory=lambda: list(DEFAULT_TOOLS))
    tool_resources: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    search_service: Optional[str] = None
    experimental: Dict[str, Any] = field(default_factory=dict)


def _usable_search_service(value: Optional[str]) -> Optional[str]:
    if not value or value == SEARCH_SERVICE_PLACEHOLDER:
        return None
    return value


def build_tool_config(cfg) -> ToolConfig:
    """根据配置组装工具集。

    - disable_* 开关为真时移除对应工具，且不添加其资源。
    - Analyst 资源只在提供了 semantic_model_path 时添加。
    - Search 资源只在检索服务名有效（非占位符）时添加。
    """

    tools = list(DEFAULT_TOOLS)
    resources: Dict[str, Dict[str, Any]] = {}

    if getattr(cfg, "disable_analyst_tool", False):
        tools.remove(CORTEX_ANALYST_TOOL)
    elif getattr(cfg, "semantic_model_path", None):
        resources[ANALYST_TOOL_NAME] = {"semantic_model_file": cfg.semantic_model_path}

    search_service = _usable_search_service(getattr(cfg, "search_service_path", None))
    if getattr(cfg, "disable_search_tool", False):
        tools.remove(CORTEX_SEARCH_TOOL)
        search_service = None
    elif search_service:
        resources[SEARCH_TOOL_NAME] = {
            "search_service": search_service,
            "max_results": getattr(cfg, "search_max_results", 10),
        }

    experimental: Dict[str, Any] = {}
    if getattr(cfg, "enable_related_queries", True):
        experimental["EnableRelatedQueries"] = True

    return ToolConfig(
        tools=tools,
        tool_resources=resources,
        search_service=search_service,
        experimental=experimental,
    )

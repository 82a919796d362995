"""Agent 请求构建。

把对话记录 + 工具配置 + token 转成可直接发送的 AgentRequest。
构建前会裁剪历史，避免把大块表格数据重新发给 Agent：

- 去掉所有 fetched_table 内容块（本地拉取的结果集）。
- 去掉裁剪后内容为空的消息。
- 之前轮次的合成 SQL 结果消息，如果前一条助手消息已内联渲染过表格，则整条省略；
  历史中的最后一条消息（当前嵌套请求需要的那条）始终保留。

同一份对话记录重复构建得到的 body 完全一致。
"""

import copy
from typing import Any, Dict, List, Optional, Sequence

from cortex_agent.config.settings import settings
from cortex_agent.domain.models import FetchedTableBlock, Message
from cortex_agent.providers.base import AgentRequest
from cortex_agent.providers.registry import auth_headers
from cortex_agent.tools.definitions import SEARCH_TOOL_NAME, ToolConfig


def _has_inline_table(message: Optional[Message]) -> bool:
    if message is None or message.role != "assistant":
        return False
    return any(isinstance(b, FetchedTableBlock) and b.inline for b in message.content)


def remove_fetched_table_from_messages(messages: Sequence[Message]) -> List[Message]:
    """返回裁剪后的新消息列表，不修改传入的消息。"""

    result: List[Message] = []
    last_index = len(messages) - 1
    for idx, msg in enumerate(messages):
        previous = messages[idx - 1] if idx > 0 else None
        if msg.synthetic and idx != last_index and _has_inline_table(previous):
            continue
        content = [copy.deepcopy(b) for b in msg.content if not isinstance(b, FetchedTableBlock)]
        if not content:
            continue
        result.append(Message(id=msg.id, role=msg.role, content=content, synthetic=msg.synthetic))
    return result


def apply_search_service(body: Dict[str, Any], search_service: Optional[str]) -> Dict[str, Any]:
    """把检索服务名写入 tool_resources.search1，保留该工具的其他资源字段。"""

    if not search_service or body.get("tool_resources") is None:
        return body
    resources = dict(body["tool_resources"])
    resources[SEARCH_TOOL_NAME] = {
        **(resources.get(SEARCH_TOOL_NAME) or {}),
        "search_service": search_service,
    }
    body["tool_resources"] = resources
    return body


class RequestBuilder:
    def __init__(self, tool_config: ToolConfig, cfg=settings):
        self._tool_config = tool_config
        self._settings = cfg

    @property
    def tool_config(self) -> ToolConfig:
        return self._tool_config

    def build(self, messages: Sequence[Message], auth_token: str) -> AgentRequest:
        history = remove_fetched_table_from_messages(messages)
        body: Dict[str, Any] = {
            "model": self._settings.agent_model,
            "messages": [m.to_payload() for m in history],
            "tools": [t.to_payload() for t in self._tool_config.tools],
            "tool_resources": copy.deepcopy(self._tool_config.tool_resources),
        }
        if self._tool_config.experimental:
            body["experimental"] = dict(self._tool_config.experimental)
        apply_search_service(body, self._tool_config.search_service)
        return AgentRequest(headers=auth_headers(auth_token), body=body)

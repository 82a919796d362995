"""外部协作方的抽象接口。

编排器不直接依赖 httpx，而是依赖这里的协议：

- AgentClient: 提交一轮对话并返回可迭代的事件流。
- SqlClient: 同步执行一条 SQL 语句，返回 TableData。
- TokenProvider: 提供 bearer token，可按需刷新。

测试中可以用简单的假对象替换任意一个实现。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Protocol

from cortex_agent.domain.models import TableData
from cortex_agent.providers.event_stream import StreamEvent


@dataclass
class AgentRequest:
    """可直接发送的请求：headers + JSON body。"""

    headers: Dict[str, str]
    body: Dict[str, Any] = field(default_factory=dict)


class AgentStream(Protocol):
    def events(self) -> Iterator[StreamEvent]:
        ...

    def close(self) -> None:
        ...


class AgentClient(Protocol):
    def open_stream(self, request: AgentRequest, fallback_message: Optional[str] = None) -> AgentStream:
        """发送请求并在响应头就绪后返回事件流；非 2xx 抛出 RemoteError。"""

        ...


class SqlClient(Protocol):
    def execute(self, statement: str, auth_token: str) -> TableData:
        ...


class TokenProvider(Protocol):
    loading: bool
    error: Optional[str]

    def get_token(self) -> Optional[str]:
        ...

    def refresh(self) -> Optional[str]:
        ...

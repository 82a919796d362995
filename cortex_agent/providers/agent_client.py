"""Cortex Agent 运行端点客户端。

负责：
1. POST {snowflake_url}/api/v2/cortex/agent:run，携带构建好的 headers/body。
2. 等待响应头；非 2xx 时读取错误 JSON 并包装为 RemoteError。
3. 返回 HttpAgentStream，由调用方逐个读取 SSE 事件并在结束时关闭连接。
"""

from contextlib import ExitStack
from typing import Any, Dict, Iterator, Optional

import httpx

from cortex_agent.config.settings import settings
from cortex_agent.domain.exceptions import RemoteError, TransportError, ValidationError
from cortex_agent.providers.base import AgentRequest
from cortex_agent.providers.event_stream import StreamEvent, iter_events
from cortex_agent.providers.registry import endpoint


COMMUNICATION_ERROR = "Failed to communicate with agent API"


class HttpAgentStream:
    """一次流式响应，持有 httpx 客户端与响应直到 close()。"""

    def __init__(self, stack: ExitStack, response: Any):
        self._stack = stack
        self._response = response

    def events(self) -> Iterator[StreamEvent]:
        try:
            yield from iter_events(self._response.iter_bytes())
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise TransportError(code="TRANSPORT_ERROR", message=COMMUNICATION_ERROR, detail=str(e))

    def close(self) -> None:
        self._stack.close()


class CortexAgentClient:
    """Agent 运行端点的 httpx 实现。"""

    name = "cortex-agent"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def open_stream(self, request: AgentRequest, fallback_message: Optional[str] = None) -> HttpAgentStream:
        base = getattr(self._settings, "snowflake_url", "")
        if not base:
            raise ValidationError(code="MISSING_URL", message="SNOWFLAKE_URL not set")
        url = endpoint(base, self._settings.agent_run_path)
        timeout = httpx.Timeout(
            self._settings.http_timeout,
            read=getattr(self._settings, "stream_read_timeout", None),
        )
        stack = ExitStack()
        try:
            client = stack.enter_context(httpx.Client(timeout=timeout, trust_env=False))
            resp = stack.enter_context(
                client.stream("POST", url, json=request.body, headers=request.headers)
            )
        except httpx.RequestError as e:
            stack.close()
            raise TransportError(code="TRANSPORT_ERROR", message=COMMUNICATION_ERROR, detail=str(e))

        if resp.status_code >= 400:
            try:
                data = self._read_error_body(resp)
            finally:
                stack.close()
            message = data.get("message") or fallback_message or f"HTTP error! status: {resp.status_code}"
            raise RemoteError(
                code=str(data.get("code") or "HTTP_ERROR"),
                message=message,
                http_status=resp.status_code,
            )
        return HttpAgentStream(stack, resp)

    @staticmethod
    def _read_error_body(resp: Any) -> Dict[str, Any]:
        """尽量解析错误响应 JSON；非 JSON 时返回空 dict。"""

        try:
            resp.read()
            data = resp.json()
        except (ValueError, httpx.HTTPError):
            return {}
        return data if isinstance(data, dict) else {}

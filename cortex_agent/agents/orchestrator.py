"""Agent 交互编排器。

一次 submit() 驱动一个完整的 exchange：

1. 追加用户消息，基于当前对话记录（去掉已拉取的表格数据）构建请求。
2. 非 2xx 响应直接提示错误并回到 IDLE，不重试。
3. 逐个读取 SSE 事件，把内容增量累加到新的助手消息中，每次修改都立即发布。
4. 工具结果中带有生成的 SQL 时，执行查询、内联结果表格、追加合成的 SQL 结果消息，
   再用更新后的对话记录发起第二轮（嵌套）请求，其终止标记结束整个 exchange。

任何 BusinessError 都会终止当前 exchange：状态回到 IDLE，并产生一条用户可见通知；
已经累加的内容保留，不回滚。UnexpectedShapeError 只提示，不终止。
"""

import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple
from uuid import uuid4

from cortex_agent.agents.accumulator import MessageAccumulator
from cortex_agent.agents.cancellation import CancellationToken
from cortex_agent.agents.graph import ExchangeState, build_exchange_graph, recursion_limit
from cortex_agent.agents.request_builder import RequestBuilder
from cortex_agent.config.settings import settings
from cortex_agent.domain.conversation import ConversationStateStore
from cortex_agent.domain.exceptions import (
    AuthMissingError,
    BusinessError,
    ExchangeCancelled,
    RemoteError,
    TransportError,
    UnexpectedShapeError,
)
from cortex_agent.domain.models import (
    ContentBlock,
    Message,
    ProcessingState,
    TableBlock,
    TableData,
    ToolResultBlock,
    ToolUseBlock,
    new_message_id,
    parse_content_block,
    sql_exec_message,
    user_text_message,
)
from cortex_agent.infrastructure.logging.logger import logger
from cortex_agent.providers.base import AgentClient, AgentStream, SqlClient, TokenProvider
from cortex_agent.providers.event_stream import StreamEvent


ExchangeStatus = Literal["completed", "failed", "cancelled"]


@dataclass
class Exchange:
    """一次 submit() 调用范围内的临时状态，exchange 结束后即丢弃。"""

    id: str
    user_input: str
    auth_token: str
    cancel_token: CancellationToken
    snapshot: Tuple[Message, ...] = ()
    assistant_message_ids: List[str] = field(default_factory=list)
    synthetic_message_ids: List[str] = field(default_factory=list)
    current_message: Optional[Message] = None
    stream: Optional[AgentStream] = None

    def close_stream(self) -> None:
        if self.stream is not None:
            stream, self.stream = self.stream, None
            stream.close()


@dataclass
class ExchangeOutcome:
    exchange_id: str
    status: ExchangeStatus
    assistant_message_ids: List[str] = field(default_factory=list)
    error: Optional[BusinessError] = None


class AgentOrchestrator:
    """驱动 exchange 的编排器。

    submit() 可以在不同线程中被调用：新的提交会取消上一次 exchange，
    被取消的 exchange 之后对状态存储的任何写入都会被拒绝（抛出 ExchangeCancelled），
    因此任意时刻只有当前 exchange 在修改对话记录和处理状态。
    """

    def __init__(
        self,
        store: ConversationStateStore,
        agent_client: AgentClient,
        sql_client: SqlClient,
        token_provider: TokenProvider,
        request_builder: RequestBuilder,
        cfg=settings,
    ):
        self._store = store
        self._agent_client = agent_client
        self._sql_client = sql_client
        self._token_provider = token_provider
        self._builder = request_builder
        self._settings = cfg
        self._accumulator = MessageAccumulator(store)
        self._graph = build_exchange_graph(self)
        self._active_token: Optional[CancellationToken] = None
        # 串行化所有写入；网络读取与 SQL 调用不持有该锁
        self._lock = threading.RLock()

    @property
    def store(self) -> ConversationStateStore:
        return self._store

    @property
    def state(self) -> ProcessingState:
        return self._store.state

    # ---- 入口 ----

    def submit(self, user_input: str, cancel_token: Optional[CancellationToken] = None) -> ExchangeOutcome:
        """执行一次完整的 exchange，返回结果摘要。

        新的提交会取消仍在进行中的上一次 exchange。
        """

        token = cancel_token or CancellationToken()
        with self._lock:
            if self._active_token is not None:
                self._active_token.cancel("superseded")
            self._active_token = token
        exchange_id = f"ex-{uuid4().hex}"
        log_ctx: Dict[str, Any] = {"exchange_id": exchange_id}
        start_time = time.time()

        auth_token = self._token_provider.get_token()
        if not auth_token:
            error = AuthMissingError(code="AUTH_MISSING", message="Authorization failed: Token is not defined")
            with self._lock:
                if self._active_token is token:
                    self._report(error, log_ctx)
                    self._active_token = None
            return ExchangeOutcome(exchange_id=exchange_id, status="failed", error=error)

        exchange = Exchange(
            id=exchange_id,
            user_input=user_input,
            auth_token=auth_token,
            cancel_token=token,
        )

        status: ExchangeStatus = "completed"
        error: Optional[BusinessError] = None
        try:
            with self._mutating(exchange):
                self._store.append_message(user_text_message(user_input))
                exchange.snapshot = tuple(self._store.messages())
                self._store.set_state(ProcessingState.LOADING)
            self._log(logging.INFO, "Exchange started", log_ctx, message_count=len(exchange.snapshot))
            request = self._builder.build(exchange.snapshot, auth_token)
            initial: ExchangeState = {
                "exchange": exchange,
                "request": request,
                "assistant_message_id": None,
                "statement": None,
                "table_data": None,
                "query_rounds": 0,
                "nested": False,
                "done": False,
            }
            self._graph.invoke(
                initial,
                config={"recursion_limit": recursion_limit(self._settings.max_query_rounds)},
            )
        except ExchangeCancelled as e:
            status = "cancelled"
            self._log(logging.INFO, "Exchange cancelled", log_ctx, reason=e.extra.get("reason"))
        except BusinessError as e:
            with self._lock:
                current = self._active_token is token
                if current:
                    self._report(e, log_ctx)
            if current:
                status = "failed"
                error = e
            else:
                # 已被新的提交取代，错误只记日志，不再通知
                status = "cancelled"
                self._log(logging.INFO, "Superseded exchange failed", log_ctx, code=e.code)
        finally:
            exchange.close_stream()
            with self._lock:
                if self._active_token is token:
                    self._store.set_state(ProcessingState.IDLE)
                    self._active_token = None

        self._log(
            logging.INFO,
            "Exchange finished",
            log_ctx,
            status=status,
            elapsed_seconds=round(time.time() - start_time, 2),
            assistant_message_ids=exchange.assistant_message_ids,
        )
        return ExchangeOutcome(
            exchange_id=exchange_id,
            status=status,
            assistant_message_ids=list(exchange.assistant_message_ids),
            error=error,
        )

    def cancel(self, reason: str = "cancelled") -> None:
        """取消正在进行的 exchange（在下一个挂起点生效）。"""

        with self._lock:
            if self._active_token is not None:
                self._active_token.cancel(reason)

    def close(self) -> None:
        self.cancel("teardown")

    # ---- 图节点 ----

    def submit_node(self, state: ExchangeState) -> Dict[str, Any]:
        exchange: Exchange = state["exchange"]
        exchange.cancel_token.raise_if_cancelled()
        nested = bool(state.get("nested"))
        request = state["request"]
        self._log(
            logging.INFO,
            "Submitting agent turn",
            {"exchange_id": exchange.id},
            nested=nested,
            message_count=len(request.body.get("messages", [])),
        )
        fallback = "Analytics processing failed" if nested else None
        exchange.stream = self._agent_client.open_stream(request, fallback_message=fallback)

        message = Message(id=new_message_id(), role="assistant")
        with self._mutating(exchange):
            exchange.current_message = message
            exchange.assistant_message_ids.append(message.id)
            self._store.set_latest_assistant_message_id(message.id)
        return {"assistant_message_id": message.id, "statement": None, "done": False}

    def stream_node(self, state: ExchangeState) -> Dict[str, Any]:
        exchange: Exchange = state["exchange"]
        message = exchange.current_message
        stream = exchange.stream
        if message is None or stream is None:
            raise TransportError(code="TRANSPORT_ERROR", message="Failed to communicate with agent API")
        log_ctx = {"exchange_id": exchange.id, "assistant_message_id": message.id}
        can_query = state.get("query_rounds", 0) < self._settings.max_query_rounds
        table_data = state.get("table_data")
        try:
            exchange.cancel_token.raise_if_cancelled()
            for event in stream.events():
                exchange.cancel_token.raise_if_cancelled()
                if event.is_terminal:
                    self._log(logging.INFO, "Stream finished", log_ctx, blocks=len(message.content))
                    return {"done": True, "statement": None}
                frame = self._decode_frame(event)
                if frame.get("code"):
                    raise RemoteError(
                        code=str(frame["code"]),
                        message=frame.get("message") or "Agent API error",
                    )
                with self._mutating(exchange):
                    statement, primary = self._apply_frame(frame, message, table_data, can_query, log_ctx)
                if statement:
                    self._log(logging.INFO, "Query requested by tool result", log_ctx)
                    return {"statement": statement}
                self._settle(exchange, primary)
        finally:
            # 触发 SQL 后第一轮流不会再被读取
            exchange.close_stream()
        # iter_events 在缺少终止标记时会抛出 TransportError，这里不可达
        return {"done": True, "statement": None}

    def execute_query_node(self, state: ExchangeState) -> Dict[str, Any]:
        exchange: Exchange = state["exchange"]
        with self._mutating(exchange):
            self._store.set_state(ProcessingState.EXECUTING_QUERY)
        log_ctx = {"exchange_id": exchange.id}
        self._log(logging.INFO, "Executing query", log_ctx, statement_preview=(state["statement"] or "")[:200])
        table = self._sql_client.execute(state["statement"], exchange.auth_token)
        self._log(
            logging.INFO,
            "Query finished",
            log_ctx,
            statement_handle=table.statement_handle,
            rows=table.num_rows,
        )
        with self._mutating(exchange):
            if exchange.current_message is not None:
                self._accumulator.append_fetched_table(exchange.current_message, table, inline=True)
        return {
            "table_data": table,
            "statement": None,
            "query_rounds": state.get("query_rounds", 0) + 1,
        }

    def synthesize_node(self, state: ExchangeState) -> Dict[str, Any]:
        exchange: Exchange = state["exchange"]
        table: TableData = state["table_data"]
        follow_up = sql_exec_message(table.statement_handle)
        with self._mutating(exchange):
            exchange.synthetic_message_ids.append(follow_up.id)
            self._store.append_message(follow_up)
            self._store.set_state(ProcessingState.SYNTHESIZING)
            messages = self._store.messages()
        request = self._builder.build(messages, exchange.auth_token)
        return {"request": request, "nested": True}

    # ---- 辅助方法 ----

    @staticmethod
    def _decode_frame(event: StreamEvent) -> Dict[str, Any]:
        try:
            frame = json.loads(event.data)
        except json.JSONDecodeError as e:
            raise TransportError(
                code="MALFORMED_FRAME",
                message="Failed to communicate with agent API",
                detail=str(e),
            )
        if not isinstance(frame, dict):
            raise TransportError(code="MALFORMED_FRAME", message="Failed to communicate with agent API")
        return frame

    def _apply_frame(
        self,
        frame: Dict[str, Any],
        message: Message,
        table_data: Optional[TableData],
        can_query: bool,
        log_ctx: Dict[str, Any],
    ) -> Tuple[Optional[str], Optional[ContentBlock]]:
        """按到达顺序应用一帧中的所有内容块。

        返回 (需要执行的 SQL, 该帧的首个内容块)。
        """

        delta = frame.get("delta")
        items = delta.get("content") if isinstance(delta, dict) else None
        if not isinstance(items, list):
            self._report(
                UnexpectedShapeError(code="UNEXPECTED_SHAPE", message="Unexpected response from agent API"),
                log_ctx,
            )
            return None, None

        statement: Optional[str] = None
        primary: Optional[ContentBlock] = None
        unexpected: Optional[UnexpectedShapeError] = None
        for item in items:
            try:
                block = parse_content_block(item)
            except UnexpectedShapeError as e:
                unexpected = e
                continue
            if primary is None:
                primary = block
            if isinstance(block, TableBlock):
                self._accumulator.append_table(message, block)
                if table_data is not None:
                    self._accumulator.append_fetched_table(message, table_data, inline=False)
            elif isinstance(block, ToolResultBlock):
                query = self._accumulator.append_tool_result(message, block)
                if query and can_query and statement is None:
                    statement = query
            else:
                self._accumulator.apply(message, block)
        if unexpected is not None:
            self._report(unexpected, log_ctx)
        return statement, primary

    def _settle(self, exchange: Exchange, primary: Optional[ContentBlock]) -> None:
        """检索工具先返回引用再返回文本，期间保持原状态；其他工具调用等待配置的延迟。"""

        if isinstance(primary, ToolUseBlock):
            if primary.name == self._settings.search_tool_name:
                return
            delay = self._settings.streaming_settle_delay
            if delay > 0:
                time.sleep(delay)
        with self._mutating(exchange):
            self._store.set_state(ProcessingState.STREAMING)

    def _report(self, error: BusinessError, log_ctx: Dict[str, Any]) -> None:
        """记录错误并产生一条用户可见通知（未知内容块也按错误提示，但不终止）。"""

        self._log(
            logging.ERROR,
            "Exchange error",
            log_ctx,
            code=error.code,
            error=error.message,
            **error.extra,
        )
        self._store.notify("error", error.message, code=error.code)

    @contextmanager
    def _mutating(self, exchange: Exchange) -> Iterator[None]:
        """持锁写入状态存储；exchange 已被取消或取代时拒绝写入。"""

        with self._lock:
            exchange.cancel_token.raise_if_cancelled()
            yield

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

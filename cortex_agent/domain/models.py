"""对话内容的统一数据模型。

本模块定义了编排器、累加器与请求构建器共享的标准数据结构：

- ContentBlock: 带 type 判别字段的内容块变体（文本、工具调用、工具结果、表格、图表、已拉取的表格数据）。
- Message: 一条对话消息，由若干 ContentBlock 组成。
- TableData: SQL 语句执行后的表格结果。
- ProcessingState: 编排器当前所处的处理状态。

线上 JSON 与这些模型之间的转换集中在 parse_content_block / to_payload 中完成，
未知的 type 一律抛出 UnexpectedShapeError，而不是静默跳过。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union
from uuid import uuid4

from cortex_agent.domain.exceptions import UnexpectedShapeError


# 消息角色（与 Cortex Agent API 的 role 字段对应）
Role = Literal["user", "assistant"]


class ProcessingState(str, Enum):
    """编排器状态，UI 据此决定是否禁用输入等。"""

    IDLE = "idle"
    LOADING = "loading"
    STREAMING = "streaming"
    EXECUTING_QUERY = "executing_query"
    SYNTHESIZING = "synthesizing"


@dataclass
class TextBlock:
    text: str

    type: ClassVar[str] = "text"

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolUseBlock:
    """模型发起的一次工具调用。"""

    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    tool_use_id: Optional[str] = None

    type: ClassVar[str] = "tool_use"

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"name": self.name, "input": self.input}
        if self.tool_use_id:
            body["tool_use_id"] = self.tool_use_id
        return {"type": self.type, "tool_use": body}


@dataclass
class ToolResultBlock:
    """工具执行结果。

    content 保持线上格式（如 [{"type": "json", "json": {...}}]），
    query_text 按固定路径 content[0].json.sql 提取生成的 SQL。
    """

    name: Optional[str]
    content: List[Dict[str, Any]] = field(default_factory=list)
    tool_use_id: Optional[str] = None
    status: Optional[str] = None

    type: ClassVar[str] = "tool_results"

    @property
    def query_text(self) -> Optional[str]:
        if not self.content:
            return None
        first = self.content[0]
        if not isinstance(first, dict):
            return None
        payload = first.get("json")
        if not isinstance(payload, dict):
            return None
        sql = payload.get("sql")
        if isinstance(sql, str) and sql.strip():
            return sql
        return None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": self.content}
        if self.name:
            body["name"] = self.name
        if self.tool_use_id:
            body["tool_use_id"] = self.tool_use_id
        if self.status:
            body["status"] = self.status
        return {"type": self.type, "tool_results": body}


@dataclass
class TableBlock:
    """Agent 下发的表格渲染指令（数据本身复用之前拉取的 TableData）。"""

    table: Dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "table"

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "table": self.table}


@dataclass
class ChartBlock:
    spec: Dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "chart"

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "chart": self.spec}


@dataclass
class TableData:
    """SQL API 返回的结果集（只保留渲染需要的部分）。"""

    statement_handle: str
    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "TableData":
        meta = data.get("resultSetMetaData") or {}
        columns = [col.get("name", "") for col in meta.get("rowType") or []]
        return cls(
            statement_handle=data.get("statementHandle") or "",
            columns=columns,
            rows=list(data.get("data") or []),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "statementHandle": self.statement_handle,
            "columns": list(self.columns),
            "rows": [list(r) for r in self.rows],
        }


@dataclass
class FetchedTableBlock:
    """本地执行 SQL 得到的表格数据，只用于渲染，从不发回 Agent。

    - inline=True: 查询完成后立即在当前助手消息中渲染。
    - inline=False: 跟随 Agent 的 table 指令块渲染。
    """

    data: TableData
    inline: bool = True

    type: ClassVar[str] = "fetched_table"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "fetched_table": {**self.data.to_payload(), "inline": self.inline},
        }


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, TableBlock, ChartBlock, FetchedTableBlock]


@dataclass
class Message:
    """一条对话消息。

    - synthetic: 由编排器自己生成（如携带 SQL 结果句柄的跟进消息），
      既不是用户输入也不是 Agent 输出。
    """

    id: str
    role: Role
    content: List[ContentBlock] = field(default_factory=list)
    synthetic: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": [block.to_payload() for block in self.content]}


def new_message_id() -> str:
    return f"m-{uuid4().hex}"


def user_text_message(text: str, message_id: Optional[str] = None) -> Message:
    return Message(id=message_id or new_message_id(), role="user", content=[TextBlock(text=text)])


def sql_exec_message(statement_handle: str, message_id: Optional[str] = None) -> Message:
    """构造携带 SQL 结果句柄的合成 user 消息，交给下一轮 Agent 做总结。"""

    return Message(
        id=message_id or new_message_id(),
        role="user",
        content=[
            ToolResultBlock(
                name="sql_exec",
                content=[{"type": "json", "json": {"query_id": statement_handle}}],
            )
        ],
        synthetic=True,
    )


def parse_content_block(item: Any) -> ContentBlock:
    """把一条线上 content 项解析成 ContentBlock。

    判别字段 type 是必需的；未知标签或字段缺失都会抛出 UnexpectedShapeError。
    """

    if not isinstance(item, dict):
        raise UnexpectedShapeError(
            code="UNEXPECTED_SHAPE",
            message="Unexpected response from agent API",
            detail=repr(item)[:200],
        )
    kind = item.get("type")
    if kind == "text" and isinstance(item.get("text"), str):
        return TextBlock(text=item["text"])
    if kind == "tool_use" and isinstance(item.get("tool_use"), dict):
        body = item["tool_use"]
        return ToolUseBlock(
            name=body.get("name") or "",
            input=body.get("input") or {},
            tool_use_id=body.get("tool_use_id"),
        )
    if kind == "tool_results" and isinstance(item.get("tool_results"), dict):
        body = item["tool_results"]
        return ToolResultBlock(
            name=body.get("name"),
            content=list(body.get("content") or []),
            tool_use_id=body.get("tool_use_id"),
            status=body.get("status"),
        )
    if kind == "table" and isinstance(item.get("table"), dict):
        return TableBlock(table=item["table"])
    if kind == "chart" and isinstance(item.get("chart"), dict):
        return ChartBlock(spec=item["chart"])
    raise UnexpectedShapeError(
        code="UNEXPECTED_SHAPE",
        message="Unexpected response from agent API",
        detail=f"unknown content type: {kind!r}",
    )

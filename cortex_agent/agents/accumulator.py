"""助手消息累加器。

对正在生成的助手消息（唯一可变的消息）应用内容增量，每次追加成功后
立即把消息按 id 重新发布到 ConversationStateStore：已存在则原位替换，
不存在则追加到末尾，所以对话长度和顺序只会因为新消息而变化。
"""

from typing import Optional

from cortex_agent.domain.conversation import ConversationStateStore
from cortex_agent.domain.models import (
    ChartBlock,
    ContentBlock,
    FetchedTableBlock,
    Message,
    TableBlock,
    TableData,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)


class MessageAccumulator:
    def __init__(self, store: ConversationStateStore):
        self._store = store

    def append_text(self, msg: Message, delta: str) -> Message:
        """文本增量按到达顺序原样拼接：末尾是文本块时续写，否则新建文本块。"""

        if msg.content and isinstance(msg.content[-1], TextBlock):
            msg.content[-1].text += delta
        else:
            msg.content.append(TextBlock(text=delta))
        return self._publish(msg)

    def append_tool_use(self, msg: Message, block: ToolUseBlock) -> Message:
        msg.content.append(block)
        return self._publish(msg)

    def append_tool_result(self, msg: Message, block: ToolResultBlock) -> Optional[str]:
        """追加工具结果，返回其中携带的 SQL（没有则为 None）。"""

        msg.content.append(block)
        self._publish(msg)
        return block.query_text

    def append_table(self, msg: Message, block: TableBlock) -> Message:
        msg.content.append(block)
        return self._publish(msg)

    def append_chart(self, msg: Message, block: ChartBlock) -> Message:
        msg.content.append(block)
        return self._publish(msg)

    def append_fetched_table(self, msg: Message, data: TableData, inline: bool) -> Message:
        msg.content.append(FetchedTableBlock(data=data, inline=inline))
        return self._publish(msg)

    def apply(self, msg: Message, block: ContentBlock) -> Message:
        """按内容块类型分发到对应的 append_* 方法。"""

        if isinstance(block, TextBlock):
            return self.append_text(msg, block.text)
        if isinstance(block, ToolUseBlock):
            return self.append_tool_use(msg, block)
        if isinstance(block, ToolResultBlock):
            self.append_tool_result(msg, block)
            return msg
        if isinstance(block, TableBlock):
            return self.append_table(msg, block)
        if isinstance(block, ChartBlock):
            return self.append_chart(msg, block)
        if isinstance(block, FetchedTableBlock):
            return self.append_fetched_table(msg, block.data, block.inline)
        raise TypeError(f"Unsupported content block: {type(block).__name__}")

    def _publish(self, msg: Message) -> Message:
        self._store.upsert_message(msg)
        return msg

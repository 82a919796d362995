"""SSE / 按行分隔 JSON 的事件流解析。

把 HTTP 响应体的字节块序列解析成离散的 StreamEvent：

1. 按行读取（\\n、\\r\\n 或 \\r），未完整的行保留到下一次读取。
2. SSE 字段行（data/event/id）累积到空行时产出一个事件；":" 开头的注释行忽略。
3. 不在 SSE 帧内的裸 JSON 行（以 "{" 或 "[" 开头，包括裸的 [DONE]）单独成为一个事件。
4. 使用增量 UTF-8 解码，多字节字符跨块切分时不会出错。
5. data 等于 "[DONE]" 的事件视为终止标记，产出后立即结束。
6. 字节流在终止标记之前结束时抛出 TransportError，调用方按 exchange 失败处理。
"""

import codecs
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from cortex_agent.domain.exceptions import TransportError


TERMINAL_DATA = "[DONE]"

_LINE_BREAK = re.compile(r"\r\n|\n|\r")


@dataclass(frozen=True)
class StreamEvent:
    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.data.strip() == TERMINAL_DATA


class _FrameBuilder:
    """逐行累积一个 SSE 帧。"""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.data_lines: List[str] = []
        self.event: Optional[str] = None
        self.id: Optional[str] = None

    @property
    def pending(self) -> bool:
        return bool(self.data_lines) or self.event is not None or self.id is not None

    def feed(self, line: str) -> Optional[StreamEvent]:
        """处理一行，返回由此完成的事件（没有则为 None）。"""

        if not line:
            return self.dispatch()
        if line.startswith(":"):
            return None
        if line.lstrip().startswith(("{", "[")):
            if not self.pending:
                return StreamEvent(data=line.strip())
            # 帧内续行的 JSON 仍属于当前帧
            self.data_lines.append(line.strip())
            return None
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "data":
            self.data_lines.append(value)
        elif name == "event":
            self.event = value
        elif name == "id":
            self.id = value
        return None

    def dispatch(self) -> Optional[StreamEvent]:
        event = None
        if self.data_lines:
            event = StreamEvent(data="\n".join(self.data_lines), event=self.event, id=self.id)
        self._reset()
        return event


def _split_lines(buffer: str) -> Tuple[List[str], str]:
    """切出完整的行，返回 (行列表, 剩余未完整部分)。

    末尾单独的 "\\r" 可能是跨块 "\\r\\n" 的前半部分，留到下一次处理。
    """

    lines: List[str] = []
    pos = 0
    for match in _LINE_BREAK.finditer(buffer):
        if match.group() == "\r" and match.end() == len(buffer):
            break
        lines.append(buffer[pos:match.start()])
        pos = match.end()
    return lines, buffer[pos:]


def iter_events(chunks: Iterable[bytes]) -> Iterator[StreamEvent]:
    """按顺序惰性产出事件，直到终止标记为止。"""

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    frame = _FrameBuilder()
    buffer = ""
    for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        lines, buffer = _split_lines(buffer)
        for line in lines:
            event = frame.feed(line)
            if event is None:
                continue
            yield event
            if event.is_terminal:
                return

    # EOF：冲刷解码器、最后一行以及没有以空行结尾的帧
    buffer += decoder.decode(b"", final=True)
    for line in _LINE_BREAK.split(buffer) + [""]:
        event = frame.feed(line)
        if event is None:
            continue
        yield event
        if event.is_terminal:
            return
    raise TransportError(
        code="TRANSPORT_ERROR",
        message="Failed to communicate with agent API",
        detail="stream closed before terminal marker",
    )

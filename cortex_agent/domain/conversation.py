"""会话状态存储。

ConversationStateStore 保存有序的对话记录、当前处理状态、正在生成的助手消息 id
以及用户可见的通知。它只在编排器的单一控制路径上被修改，每次修改后都会立即
把完整快照推送给所有订阅者（例如终端渲染器），因此无需加锁。
"""

import copy
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional, Tuple

from cortex_agent.domain.models import Message, ProcessingState
from cortex_agent.infrastructure.logging.logger import logger


NotificationLevel = Literal["error", "warning", "info"]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class ConversationSnapshot:
    """某一时刻的只读视图，messages 为深拷贝。"""

    messages: Tuple[Message, ...]
    state: ProcessingState
    latest_assistant_message_id: Optional[str]
    notifications: Tuple[Notification, ...] = field(default_factory=tuple)


Subscriber = Callable[[ConversationSnapshot], None]


class ConversationStateStore:
    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._state = ProcessingState.IDLE
        self._latest_assistant_message_id: Optional[str] = None
        self._notifications: List[Notification] = []
        self._subscribers: List[Subscriber] = []

    # ---- 读取 ----

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def latest_assistant_message_id(self) -> Optional[str]:
        return self._latest_assistant_message_id

    def messages(self) -> List[Message]:
        return copy.deepcopy(self._messages)

    def get_message(self, message_id: str) -> Optional[Message]:
        for msg in self._messages:
            if msg.id == message_id:
                return copy.deepcopy(msg)
        return None

    def get_snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            messages=tuple(copy.deepcopy(self._messages)),
            state=self._state,
            latest_assistant_message_id=self._latest_assistant_message_id,
            notifications=tuple(self._notifications),
        )

    # ---- 订阅 ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """注册订阅者，返回取消订阅的函数。"""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ---- 修改（均会触发发布） ----

    def append_message(self, message: Message) -> None:
        self._messages.append(copy.deepcopy(message))
        self._publish()

    def upsert_message(self, message: Message) -> None:
        """按 id 替换已有消息（位置不变），不存在时追加到末尾。"""

        stored = copy.deepcopy(message)
        for idx, existing in enumerate(self._messages):
            if existing.id == message.id:
                self._messages[idx] = stored
                break
        else:
            self._messages.append(stored)
        self._publish()

    def set_state(self, state: ProcessingState) -> None:
        if state == self._state:
            return
        self._state = state
        self._publish()

    def set_latest_assistant_message_id(self, message_id: Optional[str]) -> None:
        self._latest_assistant_message_id = message_id
        self._publish()

    def notify(self, level: NotificationLevel, message: str, code: Optional[str] = None) -> None:
        self._notifications.append(Notification(level=level, message=message, code=code))
        self._publish()

    def clear_notifications(self) -> None:
        self._notifications.clear()
        self._publish()

    def reset(self) -> None:
        self._messages.clear()
        self._notifications.clear()
        self._state = ProcessingState.IDLE
        self._latest_assistant_message_id = None
        self._publish()

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.get_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Store subscriber failed", extra={"extra": {"subscriber": repr(callback)}})

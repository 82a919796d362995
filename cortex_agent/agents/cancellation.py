"""Exchange 取消令牌。"""

import threading
from typing import Optional

from cortex_agent.domain.exceptions import ExchangeCancelled


class CancellationToken:
    """线程安全的取消标志，编排器在每个挂起点之前检查。"""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExchangeCancelled(code="CANCELLED", message="Exchange cancelled", reason=self.reason)

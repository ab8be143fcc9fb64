"""Non-blocking notification channel consumed by the presentation layer.

Components publish recoverable failures here instead of raising them. The UI polls the
backlog or subscribes a callback (toast). Publishing never raises: a failing subscriber is
logged and skipped.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from cloudreel.backend.common.logging import get_logger

log = get_logger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    source: str
    message: str
    error_type: Optional[str] = None
    fatal: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[Notification], None]


class Notifier:
    def __init__(self, *, max_backlog: int = 100) -> None:
        self._backlog: Deque[Notification] = deque(maxlen=max_backlog)
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(
        self,
        level: NotificationLevel,
        source: str,
        message: str,
        *,
        error: Optional[BaseException] = None,
        fatal: bool = False,
    ) -> Notification:
        notification = Notification(
            level=level,
            source=source,
            message=message,
            error_type=type(error).__name__ if error is not None else None,
            fatal=fatal,
        )
        self._backlog.append(notification)
        for callback in list(self._subscribers):
            try:
                callback(notification)
            except Exception:  # noqa: BLE001 - a broken toast must not break playback
                log.exception("notification_subscriber_failed", extra={"source": source})
        return notification

    def info(self, source: str, message: str) -> Notification:
        return self.publish(NotificationLevel.INFO, source, message)

    def warning(self, source: str, message: str, *, error: Optional[BaseException] = None) -> Notification:
        return self.publish(NotificationLevel.WARNING, source, message, error=error)

    def error(
        self,
        source: str,
        message: str,
        *,
        error: Optional[BaseException] = None,
        fatal: bool = False,
    ) -> Notification:
        return self.publish(NotificationLevel.ERROR, source, message, error=error, fatal=fatal)

    def pending(self) -> List[Notification]:
        return list(self._backlog)

    def drain(self) -> List[Notification]:
        items = list(self._backlog)
        self._backlog.clear()
        return items


__all__ = ["Notification", "NotificationLevel", "Notifier", "Subscriber"]

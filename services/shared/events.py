"""Notification sink for user-facing side effects.

Upload, processing and export outcomes are published as Notification
objects. Presentation layers subscribe through an EventSink implementation;
the core never renders or displays anything itself.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

NotificationKind = Literal[
    "files_ingested",
    "file_rejected",
    "batch_completed",
    "batch_cancelled",
    "export_completed",
    "export_empty",
]

_WARNING_KINDS = {"file_rejected", "batch_cancelled", "export_empty"}


class Notification(BaseModel):
    """A user-facing outcome emitted by the core.

    Attributes:
        kind: Notification category
        title: Short headline
        description: Longer explanation
        created_at: Emission timestamp (UTC)
    """

    kind: NotificationKind
    title: str
    description: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class EventSink(ABC):
    """Receiver of notifications emitted by the ingestion queue, pipeline and exporter."""

    @abstractmethod
    def emit(self, notification: Notification) -> None:
        """Publish a notification.

        Args:
            notification: Notification to publish
        """
        pass


class LoggingEventSink(EventSink):
    """Writes notifications to the application log."""

    def emit(self, notification: Notification) -> None:
        level = logging.WARNING if notification.kind in _WARNING_KINDS else logging.INFO
        logger.log(level, f"[{notification.kind}] {notification.title}: {notification.description}")


class MemoryEventSink(LoggingEventSink):
    """Keeps a bounded history of recent notifications in memory."""

    def __init__(self, max_size: int = 50) -> None:
        """Initialize memory sink.

        Args:
            max_size: Number of notifications retained
        """
        self._history: deque[Notification] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def emit(self, notification: Notification) -> None:
        super().emit(notification)
        with self._lock:
            self._history.append(notification)

    def recent(self) -> list[Notification]:
        """Return retained notifications, oldest first."""
        with self._lock:
            return list(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

# src/unitrack/sync/notifications.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)


class Level(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Notification:
    level: Level
    message: str
    error: BaseException | None = None


NotificationSink = Callable[[Notification], None]


@dataclass(slots=True)
class Notifier:
    """
    User-visible failure reports.

    Keeps a history (the console prints it, tests assert on it) and fans out to
    optional sinks.
    """

    history: list[Notification] = field(default_factory=list)
    sinks: list[NotificationSink] = field(default_factory=list)

    def notify(self, level: Level, message: str, error: BaseException | None = None) -> Notification:
        n = Notification(level=level, message=message, error=error)
        self.history.append(n)
        if level is Level.ERROR:
            logger.error("%s (%s)", message, error)
        elif level is Level.WARNING:
            logger.warning("%s (%s)", message, error)
        else:
            logger.info("%s", message)
        for sink in list(self.sinks):
            try:
                sink(n)
            except Exception:
                logger.exception("Notification sink failed")
        return n

    def error(self, message: str, error: BaseException | None = None) -> Notification:
        return self.notify(Level.ERROR, message, error)

    def errors(self) -> list[Notification]:
        return [n for n in self.history if n.level is Level.ERROR]

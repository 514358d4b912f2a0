# src/unitrack/sync/strategy.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Discipline(StrEnum):
    # Apply locally first, then persist; roll back on failure.
    OPTIMISTIC = "optimistic"
    # Persist first, apply locally only on success.
    PERSIST_FIRST = "persist_first"

    @classmethod
    def parse(cls, raw: str | None) -> Discipline:
        s = (raw or "").strip().lower().replace("-", "_")
        if s in ("b", "persist", "persist_first", "verified", "pessimistic"):
            return cls.PERSIST_FIRST
        return cls.OPTIMISTIC


@dataclass(slots=True, frozen=True)
class SyncStrategy:
    """Picked once at startup and shared by every mutation."""

    discipline: Discipline = Discipline.OPTIMISTIC
    verify_writes: bool = False
    rollback: bool = True

    @property
    def optimistic(self) -> bool:
        return self.discipline is Discipline.OPTIMISTIC

    @staticmethod
    def from_settings(settings) -> SyncStrategy:
        return SyncStrategy(
            discipline=Discipline.parse(getattr(settings, "discipline", None)),
            verify_writes=bool(getattr(settings, "verify_writes", False)),
            rollback=bool(getattr(settings, "rollback", True)),
        )

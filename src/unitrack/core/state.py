# src/unitrack/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..config import RemoteConfig
from ..session.lifecycle import SessionLifecycle
from ..session.provider import StaticSessionProvider
from ..store.db import TrackerDB
from ..sync.notifications import Notifier
from ..sync.protocol import SyncProtocol
from .cache import LocalStateCache


@dataclass
class AppState:
    # Settings are kept on the state so commands don't read global config.
    settings: Any

    db: TrackerDB
    cache: LocalStateCache
    protocol: SyncProtocol
    notifier: Notifier
    sessions: StaticSessionProvider
    lifecycle: SessionLifecycle

    remote: RemoteConfig | None = None

    @property
    def mode(self) -> str:
        return "remote" if self.remote is not None else "local-only"

    @property
    def session(self):
        return self.lifecycle.session

# src/unitrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the row store (remote PostgREST or local key-value fallback),
- wires db / cache / sync protocol / session lifecycle into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings, resolve_remote_config
from ..core.cache import LocalStateCache
from ..core.ports import RowStore
from ..core.state import AppState
from ..session.lifecycle import SessionLifecycle
from ..session.provider import StaticSessionProvider
from ..store.db import TrackerDB
from ..store.local import LocalRowStore, SqliteKeyValueStore
from ..store.remote import PostgrestStore
from ..sync.notifications import Notifier
from ..sync.protocol import SyncProtocol
from ..sync.strategy import SyncStrategy

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.remote_config_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, store: RowStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Tests pass their own settings and RowStore; with settings=None the global
    get_settings() is used.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    remote = resolve_remote_config(settings)
    if store is None:
        if remote is not None:
            store = PostgrestStore(
                remote.url,
                remote.anon_key,
                timeout_seconds=settings.http_timeout_seconds,
            )
            logger.info("Using remote store (%s config)", remote.source)
        else:
            store = LocalRowStore(SqliteKeyValueStore(settings.local_db_path))
            logger.info("No remote store configured; running local-only at %s", settings.local_db_path)

    strategy = SyncStrategy.from_settings(settings)
    logger.info(
        "Sync strategy discipline=%s verify_writes=%s rollback=%s",
        strategy.discipline.value,
        strategy.verify_writes,
        strategy.rollback,
    )

    notifier = Notifier()
    cache = LocalStateCache()
    db = TrackerDB(store, verify_writes=strategy.verify_writes)
    protocol = SyncProtocol(db, cache, strategy=strategy, notifier=notifier)
    sessions = StaticSessionProvider.from_settings(settings, remote=remote is not None)

    return AppState(
        settings=settings,
        db=db,
        cache=cache,
        protocol=protocol,
        notifier=notifier,
        sessions=sessions,
        lifecycle=SessionLifecycle(sessions, protocol),
        remote=remote,
    )

# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest

from unitrack.core.cache import LocalStateCache
from unitrack.core.models import Session
from unitrack.store.db import TrackerDB
from unitrack.sync.notifications import Notifier
from unitrack.sync.protocol import SyncProtocol
from unitrack.sync.strategy import Discipline, SyncStrategy

from .fakes import FakeRowStore

ProtocolFactory = Callable[..., SyncProtocol]


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """Settings stand-in for bootstrap and commands; local-only, all paths under tmp_path."""
    return SimpleNamespace(
        app_name="unitrack-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        local_db_path=tmp_path / "local.sqlite3",
        remote_config_path=tmp_path / "remote.json",
        supabase_url="",
        supabase_anon_key="",
        http_timeout_seconds=1.0,
        access_token=None,
        owner_id="student-1",
        discipline="optimistic",
        verify_writes=True,
        rollback=True,
    )


@pytest.fixture()
def session() -> Session:
    return Session(owner_id="student-1", access_token="token-1", email="student@example.edu")


@pytest.fixture()
def store() -> FakeRowStore:
    return FakeRowStore()


@pytest.fixture()
def make_protocol(store: FakeRowStore, session: Session) -> ProtocolFactory:
    """
    Build a SyncProtocol over the shared fake store.

    The cache is bound to the test session owner, as the session lifecycle
    would do after sign-in.
    """

    def _make(
        discipline: Discipline = Discipline.OPTIMISTIC,
        *,
        verify_writes: bool = True,
        rollback: bool = True,
    ) -> SyncProtocol:
        cache = LocalStateCache()
        cache.bind_owner(session.owner_id)
        strategy = SyncStrategy(discipline=discipline, verify_writes=verify_writes, rollback=rollback)
        return SyncProtocol(
            TrackerDB(store, verify_writes=verify_writes),
            cache,
            strategy=strategy,
            notifier=Notifier(),
        )

    return _make

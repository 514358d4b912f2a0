# src/unitrack/session/lifecycle.py

from __future__ import annotations

import logging

from ..core.cache import LoadState
from ..core.models import Session
from ..core.ports import SessionProvider, Unsubscribe
from ..sync.protocol import SyncProtocol

logger = logging.getLogger(__name__)


class SessionLifecycle:
    """
    Keeps the local state cache in step with the signed-in owner.

    - start(): check the current session, load data for it, subscribe to changes
    - change -> None: clear the cache
    - change -> session: bulk-fetch for that owner

    Providers may replay the current session as the first change event right
    after subscribing; that first event is dropped when it repeats the owner
    already loaded by start().
    """

    def __init__(self, provider: SessionProvider, protocol: SyncProtocol) -> None:
        self.provider = provider
        self.protocol = protocol
        self.session: Session | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._first_event = True

    async def start(self) -> Session | None:
        try:
            self.session = await self.provider.get_current_session()
        except Exception:
            logger.exception("Error checking session")
            self.session = None

        if self.session is not None:
            await self.protocol.load_all(self.session)

        self._first_event = True
        self._unsubscribe = self.provider.on_session_change(self._on_change)
        return self.session

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_change(self, session: Session | None) -> None:
        first = self._first_event
        self._first_event = False

        if first and self._same_owner(session, self.session):
            logger.debug("Ignoring replayed session event owner=%s", getattr(session, "owner_id", None))
            self.session = session
            return

        previous = self.session
        self.session = session

        if session is None:
            logger.info("Session ended; clearing local state")
            self.protocol.reset()
            return

        if previous is not None and previous.owner_id != session.owner_id:
            self.protocol.reset()
        elif self._same_owner(session, previous) and self.protocol.cache.load_state is LoadState.READY:
            # Token refresh for the same owner: nothing to reload.
            return

        await self.protocol.load_all(session)

    @staticmethod
    def _same_owner(a: Session | None, b: Session | None) -> bool:
        if a is None or b is None:
            return a is None and b is None
        return a.owner_id == b.owner_id

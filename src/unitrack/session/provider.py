# src/unitrack/session/provider.py

from __future__ import annotations

import logging

from ..core.models import Session
from ..core.ports import SessionHandler, Unsubscribe

logger = logging.getLogger(__name__)


class StaticSessionProvider:
    """
    In-process SessionProvider.

    Holds the current session handed over by whatever signed the user in
    (settings-provided token, or a fixed local owner in local-only mode) and
    notifies subscribers on sign_in/sign_out. No identity-provider flow here.
    """

    def __init__(self, session: Session | None = None) -> None:
        self._session = session
        self._handlers: list[SessionHandler] = []

    async def get_current_session(self) -> Session | None:
        return self._session

    def on_session_change(self, handler: SessionHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def _emit(self) -> None:
        for handler in list(self._handlers):
            try:
                await handler(self._session)
            except Exception:
                logger.exception("Session change handler failed")

    async def sign_in(self, session: Session) -> None:
        self._session = session
        logger.info("Signed in owner=%s", session.owner_id)
        await self._emit()

    async def sign_out(self) -> None:
        self._session = None
        logger.info("Signed out")
        await self._emit()

    @staticmethod
    def from_settings(settings, *, remote: bool) -> StaticSessionProvider:
        """Local-only mode always has an owner; remote mode needs an access token."""
        owner_id = str(getattr(settings, "owner_id", "") or "local-user")
        token = getattr(settings, "access_token", None)
        if remote and not token:
            logger.warning("No access token configured; starting signed out.")
            return StaticSessionProvider(None)
        return StaticSessionProvider(Session(owner_id=owner_id, access_token=token if remote else None))

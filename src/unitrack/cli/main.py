# src/unitrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the session lifecycle (initial
load) and runs the console until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from .console import attach_notification_printer, run_console_loop

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    state.lifecycle.stop()
    try:
        await state.db.aclose()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def run(state: AppState) -> None:
    attach_notification_printer(state)
    try:
        session = await state.lifecycle.start()
        if session is None:
            print("Not signed in. Set UNITRACK_ACCESS_TOKEN and UNITRACK_OWNER_ID for the remote store.")
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_file = setup_logging(settings.data_dir, console_level=console_level)
    logger.info("Starting %s, full log at %s", settings.app_name, log_file)

    # same settings object for logging and state
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()

# src/unitrack/logging_setup.py

"""
Logging for the interactive tracker.

The console only shows what the user can act on; the log file under the data
dir gets everything. Notifications are printed by the console sink, so their
log records stay out of the console handler.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "unitrack.log"

_SILENT = logging.CRITICAL + 1

# Console floor per logger prefix, first match wins.
CONSOLE_FLOORS: tuple[tuple[str, int], ...] = (
    ("unitrack.sync.notifications", _SILENT),
    ("unitrack.store.", logging.WARNING),
    ("unitrack.cli.", logging.WARNING),
    ("unitrack.", logging.NOTSET),
)
OTHER_FLOOR = logging.ERROR


class ConsoleFloorFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, floor in CONSOLE_FLOORS:
            if record.name.startswith(prefix):
                return record.levelno >= floor
        return record.levelno >= OTHER_FLOOR


def setup_logging(log_dir: str | Path, *, console_level: int = logging.INFO) -> Path:
    """Replace root handlers with a filtered stderr handler and a DEBUG file log; returns the log file."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("%(levelname).1s %(name)s: %(message)s"))
    console.addFilter(ConsoleFloorFilter())
    root.addHandler(console)

    to_file = logging.FileHandler(log_file, encoding="utf-8")
    to_file.setLevel(logging.DEBUG)
    to_file.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(to_file)

    # Request lines are logged by the store itself.
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file

"""Per-run logging: rich on the console, plain text in a timestamped file."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class PlainFormatter(logging.Formatter):
    """Formatter that strips ANSI colour escapes."""

    def format(self, record: logging.LogRecord) -> str:
        return ANSI_ESCAPE.sub("", super().format(record))


def log_file_path(log_dir: Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / f"bottleforge_install_{stamp}.log"


def configure_run_logging(
    log_dir: Path,
    level: str = "INFO",
    console: Console | None = None,
) -> Path:
    """Attach console and file handlers to the ``bottleforge`` logger.

    Replaces handlers from an earlier call so repeated runs in one process
    do not duplicate output.  Returns the log file path.
    """
    path = log_file_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("bottleforge")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    root.propagate = False

    rich_handler = RichHandler(
        console=console,
        show_path=False,
        show_time=False,
        markup=False,
    )
    rich_handler.setLevel(level.upper())
    root.addHandler(rich_handler)

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(PlainFormatter(LOG_FORMAT))
    root.addHandler(file_handler)

    root.info("Log file: %s", path)
    return path

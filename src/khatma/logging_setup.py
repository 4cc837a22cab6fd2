# src/khatma/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "khatma.log"
ACTIVITY_FILE_NAME = "activity.log"

_STORE_LOGGER = "khatma.storage"
_DOMAIN_LOGGER = "khatma.core"


def _under(name: str, parent: str) -> bool:
    return name == parent or name.startswith(parent + ".")


class _KhatmaConsoleFilter(logging.Filter):
    """
    The REPL already prints a reply for every command, so the console only
    gets what the reply does not say:
    - store warnings (busy retries) and errors
    - domain warnings and errors; claims, completions and rejections stay in the files
    - everything else from khatma (startup, shutdown, console lifecycle)
    - third-party and py.warnings only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if _under(name, _STORE_LOGGER) or _under(name, _DOMAIN_LOGGER):
            return record.levelno >= logging.WARNING

        if _under(name, "khatma"):
            return True

        return record.levelno >= logging.ERROR


class _ActivityFilter(logging.Filter):
    """Recitation activity only: INFO+ from the domain layer (claims, done, overrides, renames)."""

    def filter(self, record: logging.LogRecord) -> bool:
        return _under(record.name, _DOMAIN_LOGGER) and record.levelno >= logging.INFO


def setup_logging(
    *,
    log_dir: str | Path = ".local/khatma",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    activity: bool = True,
) -> None:
    """
    Configure logging with:
    - Console handler: filtered for interactive use
    - khatma.log: everything at file_level, including store retries and
      DEBUG rejections from the service
    - activity.log: one line per Khatima event, for admins reviewing who
      recited what

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_KhatmaConsoleFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_dir / LOG_FILE_NAME), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    if activity:
        ah = logging.FileHandler(str(log_dir / ACTIVITY_FILE_NAME), encoding="utf-8")
        ah.setLevel(logging.INFO)
        ah.setFormatter(logging.Formatter(fmt="%(asctime)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        ah.addFilter(_ActivityFilter())
        root.addHandler(ah)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)

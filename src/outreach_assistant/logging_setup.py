# src/outreach_assistant/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path

PACKAGE = "outreach_assistant"

# Background loggers that would interleave with the console prompt.
_BACKGROUND = (f"{PACKAGE}.tasks.reminders", f"{PACKAGE}.llm.client")

# Loggers whose records describe what was sent to whom and how tasks moved.
_AUDIT = (f"{PACKAGE}.tasks.orchestrator", f"{PACKAGE}.tasks.reminders", f"{PACKAGE}.agent.tools")

_THIRD_PARTY_LEVELS: Mapping[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """Keep the console readable while the REPL is waiting for input.

    Background components only surface WARNING+, foreign loggers ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith(PACKAGE + "."):
            return record.levelno >= logging.ERROR
        if name.startswith(_BACKGROUND):
            return record.levelno >= logging.WARNING
        return True


class _AuditFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(_AUDIT) and record.levelno >= logging.INFO


def _file_handler(path: Path, level: int, fmt: logging.Formatter) -> logging.Handler:
    h = logging.FileHandler(str(path), encoding="utf-8")
    h.setLevel(level)
    h.setFormatter(fmt)
    return h


def setup_logging(
    *,
    log_dir: str | Path = ".local/outreach",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    console: bool = True,
) -> Path:
    """
    Configure root logging once, before the first record is emitted.

    Writes:
    - <log_dir>/outreach.log: everything at file_level
    - <log_dir>/outreach-audit.log: task transitions, reminders and tool activity

    Returns the log directory.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(console_level)
        ch.setFormatter(fmt)
        ch.addFilter(_ConsoleNoiseFilter())
        root.addHandler(ch)

    root.addHandler(_file_handler(log_dir / "outreach.log", file_level, fmt))

    audit = _file_handler(log_dir / "outreach-audit.log", logging.INFO, fmt)
    audit.addFilter(_AuditFilter())
    root.addHandler(audit)

    logging.captureWarnings(True)
    logging.getLogger("py.warnings").setLevel(logging.ERROR)

    for name, level in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    return log_dir

"""Log handler setup for diffsleuth runs.

Records go to a rotating file under ``~/.diffsleuth/logs`` (or
``$DIFFSLEUTH_LOG_DIR``). Standard output carries the review and its progress
lines, so the console handler writes to standard error and only for warnings
and above.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import TextIO

__all__ = ["LOG_FILE_NAME", "get_log_path", "parse_level", "set_level", "setup_logging"]

LOG_FILE_NAME = "diffsleuth.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_DIR = Path.home() / ".diffsleuth" / "logs"
_LOG_DIR_ENV = "DIFFSLEUTH_LOG_DIR"
# These log every HTTP exchange at DEBUG.
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_FILE_HANDLER = "diffsleuth.file"
_CONSOLE_HANDLER = "diffsleuth.console"
_LOG_PATH: Path | None = None


def parse_level(value: str | int | None, *, debug: bool = False) -> int:
    """Translate a configured level such as ``"info"``, ``"WARNING"`` or ``"10"``.

    ``debug`` forces DEBUG. Empty or unknown values resolve to INFO.
    """

    if debug:
        return logging.DEBUG
    if isinstance(value, int):
        return value
    text = (value or "").strip()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text.upper(), logging.INFO)


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    stream: TextIO | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Install the rotating file handler and the stderr handler on the root logger.

    Calling again replaces the handlers from the previous call. Handlers
    installed by anything else are left in place.
    """

    global _LOG_PATH
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    root = logging.getLogger()
    _remove_installed_handlers(root)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=_DATE_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.set_name(_FILE_HANDLER)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.set_name(_CONSOLE_HANDLER)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    logging.captureWarnings(True)
    _LOG_PATH = log_path
    set_level(level)
    return log_path


def set_level(level: int) -> None:
    """Retune the root logger, the installed handlers and third-party loggers."""

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        name = handler.get_name()
        if name == _FILE_HANDLER:
            handler.setLevel(level)
        elif name == _CONSOLE_HANDLER:
            handler.setLevel(max(level, logging.WARNING))

    quiet_level = max(level, logging.WARNING)
    for logger_name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)


def get_log_path() -> Path | None:
    """Return the log file installed by :func:`setup_logging`, if any."""

    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _remove_installed_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if handler.get_name() in (_FILE_HANDLER, _CONSOLE_HANDLER):
            root.removeHandler(handler)
            handler.close()

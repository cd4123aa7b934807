"""Per-module loggers that take key=value context.

Console output goes to stderr so it never interleaves with the chat REPL.
Set COMPANION_LOG_DIR to also keep a rotating file there (JSON lines when
LOG_JSON is on).
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .constants import DEFAULT_LEVEL, LOG_JSON, LOG_LEVEL_MAP
from .formatters import JsonFormatter, PlainFormatter, SmartFormatter

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

if not logging.getLogger().handlers:
    logging.getLogger().addHandler(logging.NullHandler())


def log_dir() -> Optional[Path]:
    value = os.getenv("COMPANION_LOG_DIR", "").strip()
    return Path(value).expanduser() if value else None


def _file_handler(directory: Path) -> logging.Handler:
    directory.mkdir(parents=True, exist_ok=True)
    suffix, formatter = (".jsonl", JsonFormatter()) if LOG_JSON else (".log", PlainFormatter())
    handler = RotatingFileHandler(
        directory / f"companion{suffix}",
        encoding="utf-8",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
    )
    handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG)
    return handler


class StructuredLogger:

    def __init__(self, name: str, level: Optional[int] = None):
        self._logger = logging.getLogger(name)
        effective_level = level or DEFAULT_LEVEL
        self._logger.setLevel(effective_level)

        if not self._logger.handlers:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(SmartFormatter(use_colors=True))
            console.setLevel(effective_level)
            self._logger.addHandler(console)

            directory = log_dir()
            if directory is not None:
                try:
                    self._logger.addHandler(_file_handler(directory))
                except OSError as e:
                    self._emit(logging.WARNING, "log file unavailable", {"path": str(directory), "error": str(e)})

            self._logger.propagate = False

    def _emit(self, level: int, msg: str, extra: dict[str, Any]) -> None:
        record = self._logger.makeRecord(self._logger.name, level, "", 0, msg, (), None)
        record.extra_data = extra
        self._logger.handle(record)

    def _log(self, level: int, msg: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._emit(level, msg, kwargs)
        if level >= logging.WARNING:
            for h in self._logger.handlers:
                h.flush()

    def debug(self, msg: str, **kwargs) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs) -> None:
        self._log(logging.ERROR, msg, **kwargs)


_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str = "companion") -> StructuredLogger:
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def set_log_level(level: str) -> None:
    """Apply ``level`` to every logger created so far and their consoles.

    Unknown names fall back to DEBUG.
    """
    numeric = LOG_LEVEL_MAP.get(level.upper(), logging.DEBUG)
    for logger in _loggers.values():
        logger._logger.setLevel(numeric)
        for h in logger._logger.handlers:
            if type(h) is logging.StreamHandler:
                h.setLevel(numeric)

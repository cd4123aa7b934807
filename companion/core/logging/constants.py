import logging
import os
import sys
from contextvars import ContextVar
from typing import Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
DEFAULT_LEVEL = LOG_LEVEL_MAP.get(LOG_LEVEL, logging.INFO)
LOG_JSON = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: str):
    return _request_id.set(request_id)


def reset_request_id(token) -> None:
    _request_id.reset(token)


def get_request_id() -> Optional[str]:
    return _request_id.get()


MODULE_COLORS = {
    "service":  "\033[94m",
    "core":     "\033[96m",
    "pipeline": "\033[95m",
    "llm":      "\033[92m",
    "media":    "\033[38;5;208m",
    "cli":      "\033[97m",
}

MODULE_ABBREV = {
    "service": "SVC",
    "core": "COR",
    "pipeline": "PIP",
    "llm": "LLM",
    "media": "MED",
    "cli": "CLI",
}


class Colors:

    @staticmethod
    def _enabled() -> bool:

        if os.getenv("NO_COLOR"):
            return False
        return sys.stderr.isatty()

    @classmethod
    def get(cls, color_code: str) -> str:
        return color_code if cls._enabled() else ""


_COLORS = {
    "RESET": "\033[0m",
    "DIM": "\033[2m",
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "TIME": "\033[90m",
    "MODULE": "\033[34m",
    "KEY": "\033[90m",
    "VALUE": "\033[37m",
    "PROVIDER": "\033[95m",
    "STAGE": "\033[96m",
    "SUCCESS": "\033[92m",
    "SEPARATOR": "\033[90m",
}

LEVEL_STYLES = {
    "DEBUG": ("DEBUG", "DEBUG"),
    "INFO": (" INFO", "INFO"),
    "WARNING": (" WARN", "WARNING"),
    "ERROR": ("ERROR", "ERROR"),
    "CRITICAL": ("CRIT!", "CRITICAL"),
}

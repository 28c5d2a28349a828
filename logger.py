"""
Logging for the intelligence pipeline.

Every module logs through `get_logger(__name__)`. All pipeline loggers write
through one shared stdout handler, and the level is held in one place, so
the debug console can switch the whole pipeline to DEBUG with a single call,
including loggers of components that are only loaded later.

Query-scoped log lines carry their details as `key=value` pairs built by
`format_fields`, which keeps them greppable per query id.
"""

import logging
import sys
from typing import Any, Dict, Optional

from config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Longest string value rendered in full by format_fields
MAX_FIELD_CHARS = 60


def _numeric_level(level: str) -> int:
    return getattr(logging, str(level).upper(), logging.INFO)


class Logger:
    """Registry of pipeline loggers sharing one handler and one level."""

    _loggers: Dict[str, logging.Logger] = {}
    _handler: Optional[logging.Handler] = None
    _level: Optional[str] = None

    @classmethod
    def level(cls) -> int:
        """Current pipeline level; falls back to Config.LOG_LEVEL"""
        return _numeric_level(cls._level or Config.LOG_LEVEL)

    @classmethod
    def handler(cls) -> logging.Handler:
        if cls._handler is None:
            cls._handler = logging.StreamHandler(sys.stdout)
            cls._handler.setFormatter(logging.Formatter(LOG_FORMAT))
        return cls._handler

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        logger = cls._loggers.get(name)
        if logger is not None:
            return logger

        logger = logging.getLogger(name)
        logger.setLevel(cls.level())
        if not logger.handlers:
            logger.addHandler(cls.handler())
        cls._loggers[name] = logger
        return logger

    @classmethod
    def set_level(cls, level: str):
        """Switch every pipeline logger, present and future, to `level`."""
        cls._level = level
        numeric = cls.level()
        for logger in cls._loggers.values():
            logger.setLevel(numeric)


def get_logger(module_name: str) -> logging.Logger:
    """Convenience function to get a logger for a module."""
    return Logger.get_logger(module_name)


def _render(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    text = str(value)
    if len(text) > MAX_FIELD_CHARS:
        return text[:MAX_FIELD_CHARS] + '...'
    return text


def format_fields(**fields: Any) -> str:
    """`key=value` pairs in call order; None values are left out."""
    return ' '.join(f"{key}={_render(value)}" for key, value in fields.items() if value is not None)

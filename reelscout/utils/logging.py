"""Logging setup for the discovery jobs and scripts."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, Literal

from reelscout.config import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Chatty at DEBUG, never useful for a discovery run
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


def setup_logging(level: LogLevel | None = None) -> None:
    """Configure the root logger once per process.

    Args:
        level: Explicit level. Falls back to LOG_LEVEL, then to INFO in
            production and DEBUG everywhere else.
    """
    settings = get_settings()
    if level is None:
        level = settings.log_level or ("INFO" if settings.is_production else "DEBUG")

    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext(logging.LoggerAdapter):
    """Prefixes every message with `[key=value]` pairs.

    Keeps interleaved discovery runs apart in the log:

        log = LogContext(logger, user="3", media="movie")
        log.info("Scored 120 candidates")
        # -> "[user=3] [media=movie] Scored 120 candidates"
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, context)

    @property
    def prefix(self) -> str:
        return " ".join(f"[{k}={v}]" for k, v in self.extra.items())

    def with_context(self, **context: Any) -> "LogContext":
        return LogContext(self.logger, **{**self.extra, **context})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"{self.prefix} {msg}", kwargs

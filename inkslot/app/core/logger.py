"""Logging setup for the API process.

Console output goes through Rich, WARNING and above are also written to a file.
"""

import logging
import os

from rich.logging import RichHandler

__all__ = ["configure_logging"]

_NOISY_LOGGERS = ("asyncpg", "alembic", "sqlalchemy.engine", "httpx", "stripe")


def configure_logging(level_name: str | None = None, log_file: str | None = None) -> logging.Logger:
    """Configure root logging once and return the application logger."""
    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    env_level = (level_name or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    level = getattr(logging, env_level, logging.INFO)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("inkslot")

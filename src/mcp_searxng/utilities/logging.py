"""Logging setup for mcp-searxng.

Records go to stderr through rich. Stdout is reserved for the stdio transport.
"""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Libraries that log every request or parse step at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "trafilatura", "sse_starlette")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module of the package; pass ``__name__``."""
    return logging.getLogger(name)


def configure_logging(level: LogLevel = "INFO") -> None:
    """Install the rich handler on the root logger.

    Outside of DEBUG, the loggers in ``CHATTY_LOGGERS`` are held at WARNING so
    a search does not print one line per HTTP request.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=level == "DEBUG")],
    )
    if level != "DEBUG":
        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLevelName(level)))

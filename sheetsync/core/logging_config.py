"""
Logging setup shared by the API process and the command line.

The API writes plain ``asctime | level | logger | message`` lines to stdout;
the CLI renders the same records through rich so they interleave cleanly
with its tables.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional


_is_configured = False

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _console_handler(log_level: str, rich_output: bool) -> Dict[str, Any]:
    if rich_output:
        return {
            "class": "rich.logging.RichHandler",
            "level": log_level,
            "show_path": False,
            "rich_tracebacks": True,
        }
    return {
        "class": "logging.StreamHandler",
        "formatter": "standard",
        "level": log_level,
    }


def configure_logging(level: Optional[str] = None, *, rich_output: bool = False) -> None:
    """
    Configure the root and ``sheetsync`` loggers once per process.

    Args:
        level: Log level name, defaults to INFO.
        rich_output: Use ``rich.logging.RichHandler`` instead of a plain stream handler.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            },
            "handlers": {"console": _console_handler(log_level, rich_output)},
            "root": {"handlers": ["console"], "level": log_level},
            "loggers": {
                "urllib3": {"level": "WARNING"},
            },
        }
    )

    logging.getLogger("sheetsync").setLevel(log_level)

    _is_configured = True

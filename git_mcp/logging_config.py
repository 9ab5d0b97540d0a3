"""Configure logging for the server process.

stdout carries protocol frames, so every handler writes to stderr.
"""

from __future__ import annotations

import logging
import logging.config
import sys
from typing import Any

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def build_logging_config(level: str = "INFO", log_format: str = "text") -> dict[str, Any]:
    """Return a dictConfig mapping for the given level and output format."""
    if log_format == "json":
        formatter: dict[str, Any] = {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": JSON_FORMAT,
            "rename_fields": {"levelname": "level", "asctime": "timestamp"},
            "json_default": str,
        }
    else:
        formatter = {"format": TEXT_FORMAT}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": formatter},
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": sys.stderr,
            }
        },
        "loggers": {
            "": {"handlers": ["stderr"], "level": "WARNING"},
            "git_mcp": {"handlers": ["stderr"], "level": level, "propagate": False},
            "httpx": {"handlers": ["stderr"], "level": "WARNING", "propagate": False},
        },
    }


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Set up logging configuration."""
    logging.config.dictConfig(build_logging_config(level=level, log_format=log_format))
    logging.getLogger(__name__).debug("Logging configured (level=%s, format=%s)", level, log_format)

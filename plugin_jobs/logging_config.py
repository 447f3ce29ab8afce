# plugin_jobs/logging_config.py
"""
Stderr-only logging configuration.

CRITICAL: MCP uses stdio transport, so ALL logging must go to stderr.
No print() statements, no stdout handlers.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON line."""
        log_data: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure root logging to stderr only.

    Clears existing handlers to prevent stdout pollution.

    Args:
        level: Root log level name
        json_format: JSON lines (server mode) or a short human format (CLI worker)
    """
    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s  %(levelname)-7s  %(message)s", datefmt="%H:%M:%S")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Configure third-party loggers to use same handler
    for logger_name in ["fastmcp", "httpx"]:
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.WARNING if logger_name == "httpx" else level)
        logger.propagate = False  # Don't propagate to root to avoid double logging

"""Logging infrastructure for Supomeshi Coach.

Provides centralized logging with configurable format (text/JSON) and level.
Configured via environment variables:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_TYPE: text, json (default: text)

Planner failures attach their context with ``extra={"step": ..., "error_kind": ...}``
(step is "analyze" or "generate"; error_kind is the MealCoachError kind).
Both formatters render it: JSON as fields, text as a ``[step/kind]`` tag.
"""

import json
import logging
import os
import sys
from typing import Any, Optional

CONTEXT_FIELDS = ("step", "error_kind")


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Planner context attached to a record via ``extra=``, if any."""
    return {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}


def context_tag(record: logging.LogRecord) -> Optional[str]:
    """Short ``[analyze/upstream_call_failure]`` style tag, or None without context."""
    context = record_context(record)
    if not context:
        return None
    return "[" + "/".join(str(value) for value in context.values()) + "]"


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON string with timestamp, level, logger name, message, and optional traceback.
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Planner context (step, error_kind) attached via `extra=`
        log_data.update(record_context(record))

        # Japanese ingredient and meal names stay readable in the log stream
        return json.dumps(log_data, ensure_ascii=False)


class RichTextFormatter(logging.Formatter):
    """Formatter that outputs colored text with emoji icons."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "RESET": "\033[0m",       # Reset
    }

    ICONS = {
        "DEBUG": "🔍",
        "INFO": "ℹ️",
        "WARNING": "⚠️",
        "ERROR": "❌",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as colored text.

        Args:
            record: Log record to format.

        Returns:
            Formatted string with color codes and emoji icon.
        """
        level = record.levelname
        color = self.COLORS.get(level, self.COLORS["RESET"])
        icon = self.ICONS.get(level, "")
        reset = self.COLORS["RESET"]

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        text = record.getMessage()
        tag = context_tag(record)
        if tag:
            text = f"{tag} {text}"

        message = f"{color}{icon} {timestamp} {level:<8} {record.name:<20} {text}{reset}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def get_logger(name: str) -> logging.Logger:
    """Create and configure logger instance.

    Args:
        name: Logger name, typically module name.

    Returns:
        Configured logger instance.
    """
    logger_instance = logging.getLogger(name)

    # Return existing logger if already configured
    if logger_instance.handlers:
        return logger_instance

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_type = os.getenv("LOG_TYPE", "text").lower()

    # Unknown level names fall back to INFO
    log_level = getattr(logging, log_level_str, logging.INFO)
    logger_instance.setLevel(log_level)

    # Single stdout handler; uvicorn and the CLI share the same stream
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if log_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = RichTextFormatter()

    handler.setFormatter(formatter)
    logger_instance.addHandler(handler)

    return logger_instance


# Create module-level logger instance
logger = get_logger("supomeshi")

# Suppress verbose informational logs from external libraries
# (per-request HTTP lines from the Gemini SDK and image downloads)
for noisy_logger in ("google.genai", "google_genai", "httpx", "aiohttp.access"):
    logging.getLogger(noisy_logger).setLevel(logging.WARNING)

"""
Logging configuration.

Modules log through the standard library: logging.getLogger(__name__).
setup_logging() installs a single stdout handler on the root logger,
using JSON lines when LOG_JSON is set (for log shippers) and a compact
human-readable format otherwise.

Never log passwords, bearer tokens or reset codes. Log ids instead.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from customer_vault.config import settings


# Attributes a caller may attach with `extra={...}` that are worth keeping
_CONTEXT_FIELDS = ("user_id", "session_id", "customer_id", "fingerprint", "path")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, parseable by monitoring tools."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = str(getattr(record, field))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = f"[{timestamp}] {record.levelname:<8} {record.name}: {record.getMessage()}"

        context = [
            f"{field}={getattr(record, field)}"
            for field in _CONTEXT_FIELDS
            if hasattr(record, field)
        ]
        if context:
            message += f" [{', '.join(context)}]"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL.
        json_logs: Force JSON output on or off; defaults to settings.LOG_JSON.
    """
    level = level or settings.LOG_LEVEL
    json_logs = settings.LOG_JSON if json_logs is None else json_logs

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_logs else DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

"""
Structured Logging Configuration.

Emits JSON records for the log pipeline of the hosting scheduler, or
coloured text when running locally. Batch logs carry run, vehicle and
stop identifiers as structured context.

Usage:
    from transit_eta.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Stops loaded", extra={"route_id": "r-12", "n_stops": 14})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from transit_eta.config import settings

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "app": {
                "name": settings.APP_NAME,
                "version": settings.APP_VERSION,
                "model_version": settings.MODEL_VERSION,
            },
        }

        extra_fields = _extra_fields(record)
        if extra_fields:
            log_entry["context"] = extra_fields

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable text formatter for development.

    Provides colorized output when running in a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as colored text."""
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        message = f"{timestamp} | {color}{record.levelname:8}{reset} | {record.name} | {record.getMessage()}"

        extra_fields = _extra_fields(record)
        if extra_fields:
            context_str = " | ".join(f"{k}={v}" for k, v in extra_fields.items())
            message += f" | {context_str}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
) -> None:
    """
    Configure the root logger with appropriate handlers.

    Args:
        level: Log level (DEBUG, INFO, etc.). Defaults to config.
        format_type: Output format (json, text). Defaults to config.
    """
    level = level or settings.LOG_LEVEL
    format_type = format_type or settings.LOG_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if format_type.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Ensures logging is configured on first call.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Configured logger instance.
    """
    if not logging.getLogger().handlers:
        setup_logging()

    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that stamps fixed context on every message.

    Example:
        logger = LoggerAdapter(get_logger(__name__), {"run_id": "5f2c..."})
        logger.info("Vehicle skipped")  # carries run_id
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add extra context to the log record."""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


class EventLogger:
    """
    Typed batch events with consistent field names for querying.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or get_logger("events")

    def batch_started(self, run_id: str, n_vehicles: int) -> None:
        self._logger.info(
            "Batch started",
            extra={
                "event": "batch_started",
                "run_id": run_id,
                "n_vehicles": n_vehicles,
            }
        )

    def vehicle_skipped(self, run_id: str, vehicle_id: str, reason: str) -> None:
        self._logger.warning(
            "Vehicle skipped",
            extra={
                "event": "vehicle_skipped",
                "run_id": run_id,
                "vehicle_id": vehicle_id,
                "reason": reason,
            }
        )

    def oracle_fallback(
        self,
        run_id: str,
        vehicle_id: str,
        stop_id: str,
        error: str,
    ) -> None:
        """Log an oracle failure that degraded one prediction to internal-only."""
        self._logger.warning(
            "Route oracle unavailable, using internal estimate",
            extra={
                "event": "oracle_fallback",
                "run_id": run_id,
                "vehicle_id": vehicle_id,
                "stop_id": stop_id,
                "error": error,
            }
        )

    def predictions_persisted(self, run_id: str, n_records: int) -> None:
        self._logger.info(
            "Predictions persisted",
            extra={
                "event": "predictions_persisted",
                "run_id": run_id,
                "n_records": n_records,
            }
        )

    def write_failed(
        self,
        run_id: str,
        operation: str,
        error: str,
        vehicle_id: Optional[str] = None,
    ) -> None:
        """Log a persistence failure; the run carries on."""
        self._logger.error(
            "Write failed",
            extra={
                "event": "write_failed",
                "run_id": run_id,
                "operation": operation,
                "vehicle_id": vehicle_id,
                "error": error,
            }
        )

    def batch_completed(
        self,
        run_id: str,
        predictions: int,
        fallbacks: int,
        skipped_vehicles: int,
        duration_ms: float,
    ) -> None:
        self._logger.info(
            f"Generated {predictions} ETA predictions",
            extra={
                "event": "batch_completed",
                "run_id": run_id,
                "predictions": predictions,
                "fallbacks": fallbacks,
                "skipped_vehicles": skipped_vehicles,
                "duration_ms": duration_ms,
            }
        )


# Singleton event logger
event_logger = EventLogger()

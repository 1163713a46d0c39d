"""
Structured logging configuration for careaudit.

Provides JSON-formatted logs with trace_id support for correlating audit
writes with the request that caused them.

Environment Variables:
    CAREAUDIT_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    CAREAUDIT_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from careaudit.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id="req-12345")
    logger.info("Recorded login", extra={"entry_id": "..."})
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TraceIDFilter(logging.Filter):
    """
    Logging filter that adds trace_id to all log records.

    Ensures all logs have a trace_id field, even if not set via LoggerAdapter.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure root logger with structured logging.

    Arguments override the environment:
    - CAREAUDIT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - CAREAUDIT_LOG_FORMAT: json, text (default: json)
    """
    log_level = (level or os.getenv("CAREAUDIT_LOG_LEVEL", "INFO")).upper()
    log_format = (fmt or os.getenv("CAREAUDIT_LOG_FORMAT", "json")).lower()
    resolved = LEVELS.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(TraceIDFilter())

    if log_format == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger with optional trace_id for correlation.

    Args:
        name: Logger name (typically __name__)
        trace_id: Trace ID for correlating logs (typically a request id)

    Returns:
        LoggerAdapter with trace_id in extra fields
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"trace_id": trace_id or "N/A"})

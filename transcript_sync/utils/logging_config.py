"""Centralized logging configuration for the transcript shipper."""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure structured logging for the shipper.

    This function sets up structlog with:
    - JSON formatting for daemons and scheduled runs (when json_logs=True)
    - Console formatting for interactive use (when json_logs=False)
    - Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - Optional file output with rotation

    Logs go to stderr so that scripts can print their own results on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs. If False, use console format.
        log_file: Optional path to log file. If None, logs only to stderr.

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> log = structlog.stdlib.get_logger()
        >>> log.info("sync_started", session_id="abc123")
    """
    # Unknown level names fall back to INFO
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # stdout is reserved for script results
    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stderr,
    )

    # Optional rotating file output alongside stderr
    if log_file:
        from logging.handlers import RotatingFileHandler

        # 5 backups of 10MB each
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    processors: list[Any] = [
        # Level and logger name for filtering by component
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # ISO timestamps in UTC
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # Exceptions rendered into the entry
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        # Call site (file, line, function) of each event
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    # JSON for hooks and scheduled runs, colored console output for a terminal
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    # Loggers are cached after first use; configure before the first event
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Optional logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog logger

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("chunk_uploaded", file_name="abc.jsonl")
    """
    return structlog.stdlib.get_logger(name)

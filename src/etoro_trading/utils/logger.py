"""
Structured logging for the eToro client, built on structlog.

JSON lines for production, a colored console renderer for development.
Library modules only call get_logger(); setup_logger() is for applications
(the CLI calls it once at startup).
"""

import logging
import sys
import structlog
from pathlib import Path
from datetime import datetime, timezone
from typing import IO, List, Optional


LOG_FILE_PREFIX = "etoro"


def setup_logger(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
    log_format: str = "json",
    service_name: str = "etoro-trading"
) -> structlog.BoundLogger:
    """
    Configure structlog for the whole process and return the service logger.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the daily log file; None writes to stdout
        log_format: "json" or "console"
        service_name: Bound as `service` on every entry

    Returns:
        Logger bound to the service name
    """
    structlog.configure(
        processors=_processors(log_format),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_log_stream(log_dir)),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service=service_name)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Module logger; pass __name__ to tag entries with `logger_name`."""
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


def _processors(log_format: str) -> List:
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]

    if log_format == "json":
        return shared + [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]

    return shared + [
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
        structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    ]


def _log_stream(log_dir: Optional[str]) -> IO[str]:
    if not log_dir:
        return sys.stdout

    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    day = datetime.now(timezone.utc).strftime('%Y-%m-%d')
    return open(path / f"{LOG_FILE_PREFIX}_{day}.log", "a")


class EventType:
    """Values for the `event_type` field of lifecycle log entries."""

    # Order completion
    ORDER_EXECUTED = "ORDER_EXECUTED"
    ORDER_FAILED = "ORDER_FAILED"
    ORDER_CANCELED = "ORDER_CANCELED"
    ORDER_TIMEOUT = "ORDER_TIMEOUT"

    # Process
    STARTUP = "STARTUP"
    SHUTDOWN = "SHUTDOWN"

    # Session and transport
    WEBSOCKET_CONNECTED = "WEBSOCKET_CONNECTED"
    WEBSOCKET_DISCONNECTED = "WEBSOCKET_DISCONNECTED"
    WEBSOCKET_RECONNECTING = "WEBSOCKET_RECONNECTING"
    RATE_LIMIT_WARNING = "RATE_LIMIT_WARNING"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_order_event(
    logger: structlog.BoundLogger,
    event_type: str,
    order_id: int,
    status: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log the outcome of an order wait.

    Args:
        logger: Logger instance
        event_type: One of the EventType order values
        order_id: eToro order ID
        status: Status label (e.g. "Executed")
        **kwargs: Extra fields such as `source` or `error_code`
    """
    level = logger.info if event_type == EventType.ORDER_EXECUTED else logger.warning
    level(
        event_type,
        event_type=event_type,
        order_id=order_id,
        status=status,
        timestamp=_utc_now(),
        **kwargs
    )


def log_system_event(
    logger: structlog.BoundLogger,
    event_type: str,
    message: str,
    **kwargs
) -> None:
    """Log a process or connection lifecycle event."""
    logger.info(message, event_type=event_type, timestamp=_utc_now(), **kwargs)

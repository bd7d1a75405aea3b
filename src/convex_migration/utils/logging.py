"""Logging configuration for Convex Bridge using structlog.

Console output is rendered through Rich for readability; the optional log
file receives one JSON object per line for machine parsing.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.typing import EventDict, WrappedLogger

from convex_migration import __version__

APP_NAME = "convex-bridge"

_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Matched case-insensitively as substrings of payload keys
SENSITIVE_FIELDS = frozenset(
    {
        "token",
        "password",
        "secret",
        "key",
        "authorization",
        "auth_token",
        "access_token",
        "refresh_token",
    }
)


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries.

    Args:
        logger: The wrapped logger instance
        method_name: The name of the logger method called
        event_dict: The event dictionary to be logged

    Returns:
        EventDict: Modified event dictionary with app context
    """
    event_dict["app"] = APP_NAME
    event_dict["version"] = __version__
    return event_dict


class JSONFileFormatter(logging.Formatter):
    """Formatter that writes structlog-rendered records as JSON lines.

    ANSI escape codes are stripped from the event message.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        message = _ANSI_PATTERN.sub("", record.getMessage())

        log_entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": message,
            "app": APP_NAME,
            "version": __version__,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_logging(
    level: str = "WARNING",
    log_format: str = "json",
    log_file: str | None = None,
    file_level: str | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: File output format ('json' or 'console'). The console
            always gets the human-readable format.
        log_file: Optional path to log file
        file_level: File log level (defaults to DEBUG)
    """
    console_level = getattr(logging, level.upper(), logging.WARNING)
    file_log_level = getattr(logging, (file_level or "DEBUG").upper(), logging.DEBUG)

    console = Console(stderr=True)
    rich_handler = RichHandler(
        console=console,
        show_time=False,  # structlog already adds timestamps
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(console_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(rich_handler)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(colors=False),  # RichHandler handles coloring
    ]

    # The file handler may log below the console level, so the bound logger
    # must not filter more than the most verbose handler.
    min_level = min(console_level, file_log_level) if log_file else console_level

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(file_log_level)
        if log_format == "json":
            file_handler.setFormatter(JSONFileFormatter())
        else:
            file_handler.setFormatter(logging.Formatter("%(message)s"))

        root_logger.addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


def log_api_request(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    url: str,
    status_code: int | None = None,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log an API request with structured data.

    Args:
        logger: Logger instance
        method: HTTP method (GET, POST, etc.)
        url: Request URL
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
        **extra: Additional context to log
    """
    log_data = {
        "method": method,
        "url": url,
        **extra,
    }

    if status_code is not None:
        log_data["status_code"] = status_code

    if duration_ms is not None:
        log_data["duration_ms"] = round(duration_ms, 2)

    if status_code is None:
        logger.debug("api_request_started", **log_data)
    elif 200 <= status_code < 300:
        logger.debug("api_request_success", **log_data)
    elif 400 <= status_code < 500:
        logger.warning("api_request_client_error", **log_data)
    else:
        logger.info("api_request_server_error", **log_data)


def log_migration_progress(
    logger: structlog.stdlib.BoundLogger,
    kind: str,
    completed: int,
    total: int,
    **extra: Any,
) -> None:
    """Log per-kind migration progress.

    Args:
        logger: Logger instance
        kind: Record kind being migrated
        completed: Number of records processed
        total: Total number of records
        **extra: Additional context to log
    """
    percentage = (completed / total * 100) if total > 0 else 0

    logger.info(
        "migration_progress",
        kind=kind,
        completed=completed,
        total=total,
        percentage=round(percentage, 2),
        **extra,
    )


def sanitize_payload(payload: Any, max_depth: int = 10) -> Any:
    """Return a copy of ``payload`` with sensitive values redacted.

    Args:
        payload: The payload to sanitize (dict, list, or primitive)
        max_depth: Maximum recursion depth

    Returns:
        Sanitized copy of the payload
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(payload, dict):
        sanitized = {}
        for key, value in payload.items():
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, (dict, list)):
                sanitized[key] = sanitize_payload(value, max_depth - 1)
            else:
                sanitized[key] = value
        return sanitized

    if isinstance(payload, list):
        return [sanitize_payload(item, max_depth - 1) for item in payload]

    return payload


def truncate_payload(payload: Any, max_size: int = 10000) -> str:
    """Convert payload to string and truncate if too large.

    Args:
        payload: The payload to convert and truncate
        max_size: Maximum size in characters

    Returns:
        String representation of payload, truncated if necessary
    """
    try:
        payload_str = json.dumps(payload, indent=2, default=str)
    except (TypeError, ValueError):
        payload_str = str(payload)

    if len(payload_str) > max_size:
        return payload_str[:max_size] + f"\n... [TRUNCATED - {len(payload_str)} total chars]"

    return payload_str


def should_log_payloads(logger: structlog.stdlib.BoundLogger, log_payloads_enabled: bool) -> bool:
    """Check if payload logging should be enabled.

    Payload logging requires the ``log_payloads`` flag and a logger that
    is enabled for DEBUG.
    """
    if not log_payloads_enabled:
        return False

    try:
        stdlib_logger = logger._logger  # type: ignore
        return stdlib_logger.isEnabledFor(logging.DEBUG)
    except AttributeError:
        return True

"""Structured logging built on Loguru.

Every defect the pipeline swallows on the client's behalf (a handler payload
that breaks its schema, an issue that cannot be serialized, an undeclared
response) is reported here, so the log is the only place those problems are
visible.

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: One object per line for log shippers; issue fields bound by the
  dispatcher are grouped under an ``issue`` key

Standard library logging (uvicorn, starlette) is intercepted and routed
through Loguru so all output shares one format.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Final, cast

import orjson
from loguru import logger

from traffic.core.error_context import REDACTED, is_sensitive_field

if TYPE_CHECKING:
    from traffic.core.config import Settings


class _LoggingState:
    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()

FALLBACK_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100
INTERCEPTED_LOGGERS: Final[tuple[str, ...]] = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Shown first, in this order, when present
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "issue_code",
    "duration_ms",
)

# Extras bound by the dispatcher, grouped under "issue" in JSON output
ISSUE_FIELDS: Final[dict[str, str]] = {
    "issue_code": "code",
    "issue_status": "status",
    "issue_deflected": "deflected",
}


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _display_value(key: str, value: object) -> str:
    if key == "correlation_id":
        return str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    if key == "duration_ms":
        return f"{value}ms"
    if is_sensitive_field(key):
        return REDACTED
    text = str(value)
    if len(text) > MAX_FIELD_VALUE_LENGTH:
        return text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return text


def _context_fields(extra: dict[str, Any]) -> list[str]:
    priority = [
        f"<yellow>{_escape(_display_value(key, extra[key]))}</yellow>"
        for key in PRIORITY_FIELDS
        if extra.get(key) is not None
    ]
    others = [
        f"<dim>{_escape(key)}={_escape(_display_value(key, value))}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    ]
    return priority + others


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format a log record for the console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Loguru format string for this record.
    """
    try:
        parts = [
            f"<green>{record['time'].strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
        ]
        if context := _context_fields(record.get("extra", {})):
            parts.append(" ".join(f"[{part}]" for part in context))
        parts.append(_escape(record.get("message", "")))
        if record.get("exception"):
            parts.append("\n{exception}")
        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return FALLBACK_FORMAT + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format a log record as one JSON object per line.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    issue: dict[str, Any] = {}
    for key, value in (record.get("extra") or {}).items():
        if key.startswith("_"):
            continue
        if key in ISSUE_FIELDS:
            issue[ISSUE_FIELDS[key]] = value
        else:
            entry[key] = value
    if issue:
        entry["issue"] = issue

    if exc := record.get("exception"):
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return orjson.dumps(entry, default=str).decode() + "\n"


def _json_sink(message: object) -> None:
    record = getattr(message, "record", None)
    if record is not None:
        sys.stdout.write(serialize_for_json(record))
        sys.stdout.flush()


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so Loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: Settings) -> None:
    """Configure Loguru once per process with the configured formatter.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    config = settings.log_config
    formatter_type = config.log_formatter_type or "console"
    logger.remove()
    if formatter_type == "json":
        logger.add(
            _json_sink,
            level=config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        intercepted = logging.getLogger(name)
        intercepted.handlers = [InterceptHandler()]
        intercepted.propagate = False

    _state.configured = True
    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=config.log_level,
    )

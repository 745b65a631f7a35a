"""Global exception handlers for the FastAPI application.

Anything a Traffic handler lets escape is a server-side defect. Both handlers
log the failure with sanitized context and answer with the
``/traffic/unknown`` issue, serialized for the client's ``Accept`` header by
the application's :class:`~traffic.api.traffic.Traffic` instance.
"""

from fastapi import FastAPI, Request
from fastapi.responses import Response
from loguru import logger

from traffic.api.constants import ACCEPT_HEADER
from traffic.api.traffic import Traffic
from traffic.core.context import get_correlation_id
from traffic.core.error_context import sanitize_error_context
from traffic.core.exceptions import TrafficError


def get_traffic(request: Request) -> Traffic:
    """Return the application's Traffic instance, or a default one."""
    traffic = getattr(request.app.state, "traffic", None)
    if isinstance(traffic, Traffic):
        return traffic
    return Traffic()


async def traffic_error_handler(request: Request, exc: Exception) -> Response:
    """Handle TrafficError exceptions escaping a handler.

    Args:
        request: The request that caused the exception
        exc: The TrafficError exception to handle

    Returns:
        Response: The ``/traffic/unknown`` issue response

    Raises:
        TypeError: If exc is not a TrafficError instance
    """
    # Type narrowing - we know this handler only receives TrafficError
    if not isinstance(exc, TrafficError):
        raise TypeError(f"Expected TrafficError, got {type(exc).__name__}")

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
            "error_code": exc.error_code,
            "severity": exc.severity.value,
            "fingerprint": exc.fingerprint,
        },
    )

    log = logger.error if exc.should_alert else logger.warning
    log(
        "Handling {exception_type}: {message}",
        exception_type=type(exc).__name__,
        message=exc.message,
        correlation_id=get_correlation_id(),
        **error_context,
    )

    return get_traffic(request).unknown(request.headers.get(ACCEPT_HEADER))


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle unhandled exceptions.

    Args:
        request: The request that caused the exception
        exc: The unhandled exception

    Returns:
        Response: The ``/traffic/unknown`` issue response
    """
    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )

    # Log the full exception with stack trace and sanitized context
    logger.opt(exception=exc).error(
        "Unhandled exception: {exception_type}",
        exception_type=type(exc).__name__,
        correlation_id=get_correlation_id(),
        **error_context,
    )

    return get_traffic(request).unknown(request.headers.get(ACCEPT_HEADER))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(TrafficError, traffic_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")

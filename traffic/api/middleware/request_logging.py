"""Access logging with timing for every request.

Each request gets one summary line when it finishes. The level follows the
outcome: served requests are logged at info, requests answered with a 4xx
issue (the client's fault) at info as "rejected", and 5xx answers at warning
as "failed". The request and response content types are included so a
rejected upload can be matched with the issue that rejected it. Paths listed
in ``LogConfig.excluded_paths`` are skipped.
"""

import time
from typing import Literal

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from traffic.api.constants import (
    CONTENT_TYPE_HEADER,
    MAX_USER_AGENT_LENGTH,
    REQUEST_ID_HEADER,
)
from traffic.core.config import LogConfig
from traffic.core.constants import MILLISECONDS_PER_SECOND
from traffic.core.context import generate_correlation_id
from traffic.core.error_context import sanitize_dict

type Outcome = Literal["completed", "rejected", "failed"]


def request_outcome(status_code: int) -> Outcome:
    """Classify a response status for the access log."""
    if status_code >= 500:
        return "failed"
    if status_code >= 400:
        return "rejected"
    return "completed"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.log_config = log_config
        self.excluded_paths = frozenset(log_config.excluded_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Serve the request and log its summary.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application, with a request ID.

        Raises:
            Exception: Anything the application raised, after logging it.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_correlation_id()
        client = request.client.host if request.client else "unknown"

        with logger.contextualize(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=client,
        ):
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "Request raised {}",
                    type(exc).__name__,
                    duration_ms=self._elapsed_ms(start),
                )
                raise

            duration_ms = self._elapsed_ms(start)
            outcome = request_outcome(response.status_code)
            log = logger.warning if outcome == "failed" else logger.info
            log(
                "Request {}",
                outcome,
                status_code=response.status_code,
                duration_ms=duration_ms,
                request_type=request.headers.get(CONTENT_TYPE_HEADER),
                response_type=response.headers.get(CONTENT_TYPE_HEADER),
                query_params=sanitize_dict(dict(request.query_params)) or None,
                user_agent=request.headers.get("user-agent", "")[:MAX_USER_AGENT_LENGTH]
                or None,
            )
            if duration_ms > self.log_config.slow_request_threshold_ms:
                logger.warning(
                    "Slow request: {}ms over {}ms",
                    duration_ms,
                    self.log_config.slow_request_threshold_ms,
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * MILLISECONDS_PER_SECOND, 2)

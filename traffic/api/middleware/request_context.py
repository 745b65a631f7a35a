"""Correlation ID middleware.

Takes the client's correlation ID (or generates one), binds it for the
duration of the request, and echoes it back in the response headers. Issue
and defect logs from the Traffic pipeline carry it automatically.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from traffic.api.constants import CORRELATION_ID_HEADER
from traffic.core.context import correlation_scope


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to manage correlation IDs."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Serve the request inside a correlation scope.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with the correlation ID header.
        """
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

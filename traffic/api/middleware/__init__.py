"""FastAPI middleware and exception handlers.

- **RequestContextMiddleware**: Manages correlation IDs and request context
- **RequestLoggingMiddleware**: Structured logging with performance tracking
- **error_handler**: Answers escaped exceptions with ``/traffic/unknown``

Request context is registered last so it runs first, and every request log
line carries the correlation ID.
"""

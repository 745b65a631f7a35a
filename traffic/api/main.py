"""FastAPI application factory.

Builds an application whose endpoints are Traffic routes:
- logging and tracing are configured from settings
- exception handlers answer escaped errors with ``/traffic/unknown``
- correlation and request logging middleware wrap every request
- a ``/health`` route is mounted through Traffic like any other

Middleware are executed in reverse order of registration.
"""

from collections.abc import AsyncGenerator, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from loguru import logger
from starlette.responses import Response

from traffic.api.context import RequestContext
from traffic.api.middleware.error_handler import register_exception_handlers
from traffic.api.middleware.request_context import RequestContextMiddleware
from traffic.api.middleware.request_logging import RequestLoggingMiddleware
from traffic.api.schemas.routes import RouteDefinition
from traffic.api.traffic import Handler, Traffic
from traffic.api.utils.responses import ORJSONResponse
from traffic.core.config import Settings, get_settings
from traffic.core.logging import setup_logging
from traffic.core.observability import instrument_app, setup_tracing

type RouteEntry = tuple[RouteDefinition | Mapping[str, Any], Handler]

HEALTH_ROUTE: RouteDefinition = RouteDefinition.model_validate(
    {
        "method": "get",
        "path": "/health",
        "description": "Liveness probe",
        "response": {
            "status": 200,
            "mime": "json",
            "content": {"status": str, "version": str},
        },
    }
)


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Log application startup and shutdown.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.
    """
    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )
    yield
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    traffic: Traffic | None = None,
    routes: Iterable[RouteEntry] = (),
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        traffic: Traffic instance compiling the routes; one is created if omitted.
        routes: ``(definition, handler)`` pairs to mount.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    if traffic is None:
        traffic = Traffic(settings=settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        # Traffic routes are excluded from the OpenAPI schema
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.traffic = traffic

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    # 2. Request logging middleware (logs requests/responses)
    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)

    # 1. Request context middleware (creates correlation ID)
    application.add_middleware(RequestContextMiddleware)

    async def health(context: RequestContext) -> Response:
        return await context.response(
            200, "json", {"status": "healthy", "version": settings.app_version}
        )

    traffic.mount(application.router, HEALTH_ROUTE, health)
    for definition, handler in routes:
        traffic.mount(application.router, definition, handler)

    instrument_app(application, settings)

    return application


app = create_app()

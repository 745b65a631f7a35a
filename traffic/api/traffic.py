"""Route compiler and runtime.

:class:`Traffic` owns the issue registry, the content codec and the issue
serialization default. Routes compiled from it share all three.

Example:
    traffic = Traffic()

    async def get_user(context: RequestContext) -> Response:
        user = await load_user(context.params["id"])
        if user is None:
            return await context.issue("/users/not-found", context.params["id"])
        return await context.response(200, "json", user)

    traffic.mount(
        app.router,
        {
            "method": "get",
            "path": "/users/{id}",
            "request": {"params": {"id": int}, "optional": True},
            "response": {"status": 200, "mime": "json", "content": User},
            "issues": ["/users/not-found"],
        },
        get_user,
    )
"""

from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any

from loguru import logger
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Router

from traffic.api.codec import ContentCodec
from traffic.api.constants import ACCEPT_HEADER
from traffic.api.context import RequestContext
from traffic.api.dispatch import (
    issue_response,
    log_issue,
    logged_payload,
    render_response,
    unsupported_type_response,
)
from traffic.api.pipeline import validate_request
from traffic.api.routing import CompiledRoute, compile_route
from traffic.api.schemas.routes import RouteDefinition
from traffic.core.config import Settings, get_settings
from traffic.core.error_context import sanitize_error_context
from traffic.core.exceptions import (
    IssueNotAllowedError,
    IssueRaised,
    RouteDefinitionError,
    UndeclaredResponseError,
)
from traffic.core.issues import (
    UNKNOWN,
    UNSUPPORTED_CONTENT_TYPE,
    Issue,
    IssueFactory,
    Issues,
)
from traffic.core.mime import MediaType
from traffic.core.observability import record_issue, route_span

type Handler = Callable[[RequestContext], Awaitable[Response]]
type Endpoint = Callable[[Request], Awaitable[Response]]


class Traffic:
    """Compiles route definitions and emits issues.

    Args:
        issues: A registry, or custom factories merged over the built-ins.
        codec: Content codec; a default :class:`ContentCodec` if omitted.
        default_response_type: Issue format used when the client accepts
            anything. Defaults to the configured value.
        settings: Application settings; :func:`get_settings` if omitted.
    """

    def __init__(
        self,
        issues: Issues | Mapping[str, IssueFactory] | None = None,
        *,
        codec: ContentCodec | None = None,
        default_response_type: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.issues = issues if isinstance(issues, Issues) else Issues(issues)
        self.codec = codec or ContentCodec()
        self.default_response_type = MediaType.parse(
            default_response_type
            or self.settings.negotiation_config.default_response_type
        )

    def issue_response(
        self,
        issue: Issue,
        accept: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Log and serialize an issue for a client with ``accept`` preferences.

        Args:
            issue: The issue to send.
            accept: The client's Accept header.
            headers: Extra response headers.

        Returns:
            Response: The issue response.
        """
        log_issue(issue)
        return issue_response(
            issue, accept, self.default_response_type, self.codec, headers
        )

    def unknown(self, accept: str | None = None) -> Response:
        """Send the generic ``/traffic/unknown`` issue."""
        return self.issue_response(self.issues.instantiate(UNKNOWN), accept)

    def route(
        self, definition: RouteDefinition | Mapping[str, Any], handler: Handler
    ) -> "TrafficRoute":
        """Compile a definition and bind it to a handler.

        Args:
            definition: The route definition, or a mapping validated into one.
            handler: Async callable taking a :class:`RequestContext`.

        Returns:
            TrafficRoute: Callable as ``route(request, params)``.

        Raises:
            RouteDefinitionError: If the definition is invalid.
        """
        compiled = compile_route(definition, self.issues, self.codec)
        logger.debug(
            "Compiled route {} {}",
            compiled.definition.method.upper(),
            compiled.definition.path or "<unmounted>",
            responses=len(compiled.responses),
        )
        return TrafficRoute(self, compiled, handler)

    @staticmethod
    def endpoint(route: "TrafficRoute") -> Endpoint:
        """Adapt a compiled route into a Starlette endpoint."""
        return route.endpoint

    def mount(
        self,
        router: Router,
        definition: RouteDefinition | Mapping[str, Any],
        handler: Handler,
    ) -> "TrafficRoute":
        """Compile a route and register it on a Starlette or FastAPI router.

        Args:
            router: Router to register on (``app.router``).
            definition: Route definition with a ``path``.
            handler: Async callable taking a :class:`RequestContext`.

        Returns:
            TrafficRoute: The compiled route.

        Raises:
            RouteDefinitionError: If the definition is invalid or has no path.
        """
        route = self.route(definition, handler)
        path = route.definition.path
        if path is None:
            msg = "A mounted route must declare a path"
            raise RouteDefinitionError(msg)
        router.add_route(
            path,
            self.endpoint(route),
            methods=[route.definition.method.upper()],
            include_in_schema=False,
        )
        return route


class TrafficRoute:
    """A compiled route bound to its handler."""

    def __init__(
        self, traffic: Traffic, compiled: CompiledRoute, handler: Handler
    ) -> None:
        self.traffic = traffic
        self.compiled = compiled
        self.handler = handler

    @property
    def definition(self) -> RouteDefinition:
        """RouteDefinition: The validated definition."""
        return self.compiled.definition

    async def endpoint(self, request: Request) -> Response:
        """Starlette endpoint; path params come from the router."""
        return await self(request)

    async def __call__(
        self, request: Request, params: Mapping[str, Any] | None = None
    ) -> Response:
        """Validate the request, run the handler and return its response.

        Files uploaded with the request are closed once the response is built.

        Args:
            request: The incoming request.
            params: Resolved path params; ``request.path_params`` if omitted.

        Returns:
            Response: The handler's response or an issue response.
        """
        try:
            return await self._serve(request, params)
        finally:
            # Releases uploaded files spooled by form parsing
            await request.close()

    async def _serve(
        self, request: Request, params: Mapping[str, Any] | None
    ) -> Response:
        path_params = request.path_params if params is None else params
        accept = request.headers.get(ACCEPT_HEADER)

        with route_span(request.method, self.definition.path) as span:
            result = await validate_request(
                self.compiled,
                request,
                path_params,
                self.traffic.issues,
                self.traffic.codec,
            )
            if isinstance(result, Issue):
                record_issue(span, result)
                if result.code == UNSUPPORTED_CONTENT_TYPE:
                    log_issue(result)
                    return unsupported_type_response(result)
                return self.traffic.issue_response(result, accept)

            context = RequestContext(
                request=request,
                url=request.url,
                traffic=self.traffic,
                response=partial(self._respond, accept),
                issue=partial(self._issue, accept),
                params=result.params,
                query=result.query,
                headers=result.headers,
                content=result.content,
            )
            try:
                return await self.handler(context)
            except IssueRaised as exc:
                record_issue(span, exc.issue)
                return self._emit(exc.issue, accept)

    def _defect(
        self, exc: Exception, accept: str | None, **context: Any  # noqa: ANN401 - log context
    ) -> Response:
        logger.opt(exception=exc).error(
            "Handler broke the contract of {} {}",
            self.definition.method.upper(),
            self.definition.path or "<unmounted>",
            **sanitize_error_context(exc, context),
        )
        return self.traffic.unknown(accept)

    def _emit(self, issue: Issue, accept: str | None) -> Response:
        if not self.compiled.allows(issue.code):
            error = IssueNotAllowedError(issue.code, self.definition.issues)
            return self._defect(error, accept)
        return self.traffic.issue_response(issue, accept)

    async def _issue(
        self, accept: str | None, code: str, *args: Any, **kwargs: Any  # noqa: ANN401 - forwarded to the factory
    ) -> Response:
        if not self.compiled.allows(code):
            error = IssueNotAllowedError(code, self.definition.issues)
            return self._defect(error, accept)
        return self.traffic.issue_response(
            self.traffic.issues.instantiate(code, *args, **kwargs), accept
        )

    async def _respond(
        self,
        accept: str | None,
        status: int,
        mime: str,
        data: Any = None,  # noqa: ANN401 - validated against the declared schema
        headers: Mapping[str, Any] | None = None,
    ) -> Response:
        try:
            return render_response(
                self.compiled, self.traffic.codec, status, mime, data, headers
            )
        except UndeclaredResponseError as exc:
            return self._defect(exc, accept)
        except ValidationError as exc:
            enabled = self.traffic.settings.negotiation_config.log_response_payloads
            logger.error(
                "Response {} {!r} of {} {} failed its schema",
                status,
                mime,
                self.definition.method.upper(),
                self.definition.path or "<unmounted>",
                errors=exc.errors(include_url=False, include_input=False),
                payload=logged_payload(data, enabled=enabled),
            )
            return self.traffic.unknown(accept)
        except (TypeError, ValueError) as exc:
            return self._defect(exc, accept, status=status, mime=mime)

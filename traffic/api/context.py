"""Per-request state handed to route handlers."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from starlette.datastructures import URL
from starlette.requests import Request
from starlette.responses import Response

from traffic.core.mime import MediaType

if TYPE_CHECKING:
    from traffic.api.traffic import Traffic

type RespondFn = Callable[..., Awaitable[Response]]
type IssueFn = Callable[..., Awaitable[Response]]


class Content(NamedTuple):
    """A validated request body and the media type it arrived as."""

    type: MediaType
    data: Any


@dataclass(slots=True)
class RequestContext:
    """Validated view of one request.

    ``response(status, mime, data=None, headers=None)`` sends one of the
    route's declared responses. ``issue(code, *args, **kwargs)`` sends an
    issue whose code the route declares. Both are bound to the request's
    ``Accept`` header and must be awaited.

    Attributes:
        request: The raw Starlette request.
        url: The request URL.
        traffic: The owning Traffic instance.
        response: Bound response operation.
        issue: Bound issue operation.
        params: Validated path parameters.
        query: Validated query parameters.
        headers: Validated headers, keyed as declared.
        content: Validated body, or None when the route takes no body.
    """

    request: Request
    url: URL
    traffic: "Traffic"
    response: RespondFn
    issue: IssueFn
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, Any] = field(default_factory=dict)
    content: Content | None = None

"""Outgoing side of a route: declared responses and issue emission.

Handlers never build a body directly. They name a declared
``(status, mime)`` pair and hand over the data; :func:`render_response`
validates the data against the declared schema and encodes it. Issues are
serialized in whatever format the client's ``Accept`` header prefers, as
long as the codec can produce it.
"""

from collections.abc import Mapping
from typing import Any

from loguru import logger
from starlette.responses import Response

from traffic.api.codec import ContentCodec
from traffic.api.routing import CompiledResponse, CompiledRoute
from traffic.api.utils.responses import ORJSONResponse
from traffic.core.constants import DEFAULT_CHARSET
from traffic.core.error_context import sanitize_value
from traffic.core.exceptions import UndeclaredResponseError
from traffic.core.issues import Issue
from traffic.core.mime import WILDCARD, MediaType


def negotiate(
    accept: str | None, default: MediaType, codec: ContentCodec
) -> MediaType | None:
    """Pick the issue serialization format for an ``Accept`` header.

    Args:
        accept: Raw Accept header value, None when absent.
        default: Format used for ``*/*`` and for ranges covering it.
        codec: Codec the chosen format must be encodable by; other
            ``media/*`` ranges resolve to its first canonical type there.

    Returns:
        MediaType | None: The format to use, or None if the client accepts
            nothing the codec can produce.
    """
    if not accept:
        return default

    for candidate in MediaType.parse_accept(accept):
        if candidate.is_wildcard:
            if candidate.media in (WILDCARD, default.media):
                return default
            if in_range := codec.in_range(candidate.media):
                return in_range
            continue
        if codec.can_encode(candidate):
            return candidate
    return None


def log_issue(issue: Issue) -> None:
    """Log an issue about to be sent; client-caused ones at warning level."""
    log = logger.bind(
        issue_code=issue.code,
        issue_status=issue.status,
        issue_deflected=issue.deflected,
    )
    if issue.deflected:
        log.warning("Request rejected: {}", issue.code)
    else:
        log.error("Request failed: {}", issue.code)


def issue_response(
    issue: Issue,
    accept: str | None,
    default: MediaType,
    codec: ContentCodec,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """Serialize an issue into a response.

    A serialization failure never changes the status: the issue is sent
    with an empty body instead.

    Args:
        issue: The issue to send.
        accept: The request's Accept header.
        default: Format used when the client accepts anything.
        codec: Codec used to serialize the issue.
        headers: Extra headers, merged over the issue's own.

    Returns:
        Response: The issue response.
    """
    response_headers = {**(issue.headers or {}), **(headers or {})}
    media_type = negotiate(accept, default, codec)
    if media_type is None:
        logger.warning(
            "No acceptable format for issue {}, sending empty body",
            issue.code,
            accept=accept,
        )
        return Response(status_code=issue.status, headers=response_headers)

    try:
        payload = codec.encode(issue.model_dump(mode="json"), media_type)
    except (TypeError, ValueError) as exc:
        logger.opt(exception=exc).error(
            "Failed to serialize issue {} as {}", issue.code, media_type
        )
        payload = None

    if payload is None:
        return Response(status_code=issue.status, headers=response_headers)
    return Response(
        payload.value,
        status_code=issue.status,
        headers=response_headers,
        media_type=media_type.type,
    )


def unsupported_type_response(issue: Issue) -> Response:
    """Send an unsupported-content-type issue as JSON, ignoring ``Accept``."""
    return ORJSONResponse(
        issue.model_dump(mode="json"),
        status_code=issue.status,
        headers=issue.headers,
    )


def _encode_raw(
    response: CompiledResponse, data: Any, codec: ContentCodec  # noqa: ANN401 - raw payloads are untyped
) -> bytes:
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        return data.encode(response.media_type.params.get("charset", DEFAULT_CHARSET))
    payload = codec.encode(data, response.media_type)
    if payload is None:
        msg = f"Cannot encode {type(data).__name__} as {response.media_type}"
        raise TypeError(msg)
    return payload.value


def render_body(
    response: CompiledResponse, data: Any, codec: ContentCodec  # noqa: ANN401 - validated against the declared schema
) -> bytes:
    """Validate and encode a response body.

    Raises:
        ValidationError: If ``data`` does not match the declared schema.
        TypeError: If the validated data cannot be encoded.
    """
    if response.raw:
        return _encode_raw(response, data, codec)
    if data is None and response.optional:
        return b""

    if response.content is None:
        msg = f"Response {response.status} {response.mime!r} has no schema"
        raise TypeError(msg)
    value = response.content.validate_python(data)
    dumped = response.content.dump_python(value, mode="json")
    payload = codec.encode(dumped, response.media_type)
    if payload is None:
        msg = f"Cannot encode response as {response.media_type}"
        raise TypeError(msg)
    return payload.value


def render_headers(
    response: CompiledResponse, headers: Mapping[str, Any] | None
) -> dict[str, str]:
    """Validate declared response headers; undeclared ones pass through.

    Raises:
        ValidationError: If a declared header does not match its schema.
    """
    rendered = {name: str(value) for name, value in (headers or {}).items()}
    names = {name.lower(): name for name in rendered}
    for name, adapter in response.headers.items():
        key = names.get(name.lower(), name)
        value = adapter.validate_python(rendered.get(key))
        if value is not None:
            rendered[key] = str(value)
    return rendered


def render_response(
    route: CompiledRoute,
    codec: ContentCodec,
    status: int,
    mime: str,
    data: Any = None,  # noqa: ANN401 - validated against the declared schema
    headers: Mapping[str, Any] | None = None,
) -> Response:
    """Build one of the route's declared responses.

    Args:
        route: The compiled route.
        codec: Codec used to encode the payload.
        status: Declared HTTP status.
        mime: Declared mime, short (``json``) or full.
        data: The payload.
        headers: Response headers.

    Returns:
        Response: The encoded response.

    Raises:
        UndeclaredResponseError: If ``(status, mime)`` is not declared.
        ValidationError: If the payload or a header breaks its schema.
        TypeError: If the payload cannot be encoded.
    """
    response = route.lookup(status, mime)
    if response is None:
        raise UndeclaredResponseError(status, mime)

    response_headers = render_headers(response, headers)
    body = render_body(response, data, codec)
    return Response(
        body,
        status_code=status,
        headers=response_headers,
        media_type=response.media_type.type,
    )


def logged_payload(data: Any, *, enabled: bool) -> Any:  # noqa: ANN401 - arbitrary payloads
    """Return the sanitized payload for logging, or a placeholder when disabled."""
    if not enabled:
        return "<omitted>"
    return sanitize_value(data)

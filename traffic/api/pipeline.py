"""Request validation pipeline.

Stages run in a fixed order and the first failure wins:

1. path params        -> ``/traffic/request/invalid-params``
2. query string       -> ``/traffic/request/invalid-query``
3. headers            -> ``/traffic/request/invalid-headers``
4. content type       -> ``/traffic/request/unsupported-content-type``
5. body               -> ``/traffic/request/unsupported-content`` or
                         ``/traffic/request/invalid-content``

A failing stage returns an :class:`~traffic.core.issues.Issue` instead of
raising; later stages do not run.
"""

from collections.abc import Mapping
from typing import Any, NamedTuple

from pydantic import TypeAdapter, ValidationError
from pydantic_core import InitErrorDetails, PydanticCustomError
from starlette.datastructures import QueryParams
from starlette.requests import Request

from traffic.api.codec import ContentCodec, ContentDecodeError, summarize_uploads
from traffic.api.constants import CONTENT_TYPE_HEADER
from traffic.api.context import Content
from traffic.api.routing import CompiledRoute
from traffic.core.constants import OCTET_STREAM
from traffic.core.exceptions import MediaTypeError
from traffic.core.issues import (
    INVALID_CONTENT,
    INVALID_HEADERS,
    INVALID_PARAMS,
    INVALID_QUERY,
    UNSUPPORTED_CONTENT,
    UNSUPPORTED_CONTENT_TYPE,
    Issue,
    Issues,
)
from traffic.core.mime import MediaType


class ValidatedRequest(NamedTuple):
    """Everything the pipeline accepted."""

    params: dict[str, Any]
    query: dict[str, Any]
    headers: dict[str, Any]
    content: Content | None


def query_values(query: QueryParams) -> dict[str, str | list[str]]:
    """Flatten query params; a repeated key keeps all of its values."""
    values: dict[str, str | list[str]] = {}
    for key in query:
        items = query.getlist(key)
        values[key] = items[0] if len(items) == 1 else items
    return values


def locate_errors(error: ValidationError, *location: str) -> ValidationError:
    """Rebuild ``error`` with ``location`` leading every ``loc``.

    Uploaded files in the rejected input are summarized, so their part
    headers are never echoed back to the client.

    Args:
        error: The validation error raised by a field or body schema.
        location: Path prepended to each entry's ``loc``.

    Returns:
        ValidationError: The same entries (type, message, input) relocated.
    """
    details: list[InitErrorDetails] = [
        {
            "type": PydanticCustomError(detail["type"], detail["msg"]),
            "loc": (*location, *detail["loc"]),
            "input": summarize_uploads(detail["input"]),
        }
        for detail in error.errors(include_url=False)
    ]
    return ValidationError.from_exception_data(error.title, details)


def validate_fields(
    adapters: Mapping[str, TypeAdapter[Any]],
    source: Mapping[str, Any],
) -> tuple[dict[str, Any], ValidationError | None]:
    """Validate each declared field against its value in ``source``.

    Args:
        adapters: Field name to validator.
        source: Raw values; a missing field validates as None.

    Returns:
        tuple: The validated values and, on failure, the error located
            under the offending field name.
    """
    validated: dict[str, Any] = {}
    for name, adapter in adapters.items():
        try:
            validated[name] = adapter.validate_python(source.get(name))
        except ValidationError as exc:
            return validated, locate_errors(exc, name)
    return validated, None


def is_supported(media_type: MediaType, accepted: tuple[str, ...]) -> bool:
    """Check a request media type against the declared mimes."""
    return any(media_type.matches(mime) for mime in accepted)


async def read_content(
    route: CompiledRoute,
    request: Request,
    media_type: MediaType,
    issues: Issues,
    codec: ContentCodec,
) -> Content | Issue:
    """Decode and validate the body as declared by ``route``.

    Returns:
        Content | Issue: The validated body, or the issue describing why it
            was rejected.
    """
    if route.definition.request.raw:
        return Content(media_type, await request.body())

    if route.content is None:
        msg = "read_content requires a content schema"
        raise ValueError(msg)

    try:
        payload = await codec.decode(request, media_type)
    except ContentDecodeError as exc:
        return issues.instantiate(INVALID_CONTENT, exc.to_validation_error())
    if payload is None:
        return issues.instantiate(UNSUPPORTED_CONTENT)

    try:
        data = route.content.validate_python(payload.value)
    except ValidationError as exc:
        return issues.instantiate(INVALID_CONTENT, locate_errors(exc))
    return Content(media_type, data)


async def validate_request(
    route: CompiledRoute,
    request: Request,
    path_params: Mapping[str, Any],
    issues: Issues,
    codec: ContentCodec,
) -> ValidatedRequest | Issue:
    """Run every stage of the pipeline for one request.

    Args:
        route: The compiled route.
        request: The incoming request.
        path_params: Resolved path parameters.
        issues: Registry used to build issues.
        codec: Codec used to decode the body.

    Returns:
        ValidatedRequest | Issue: The validated request, or the first issue.
    """
    params, failure = validate_fields(route.params, path_params)
    if failure:
        return issues.instantiate(INVALID_PARAMS, failure)

    query, failure = validate_fields(route.query, query_values(request.query_params))
    if failure:
        return issues.instantiate(INVALID_QUERY, failure)

    headers, failure = validate_fields(route.headers, request.headers)
    if failure:
        return issues.instantiate(INVALID_HEADERS, failure)

    declared = route.definition.request
    content_type = request.headers.get(CONTENT_TYPE_HEADER)
    if not declared.mime or (declared.optional and content_type is None):
        return ValidatedRequest(params, query, headers, None)

    try:
        media_type = MediaType.parse(content_type or OCTET_STREAM)
    except MediaTypeError:
        return issues.instantiate(UNSUPPORTED_CONTENT_TYPE, route.accepted)
    if not is_supported(media_type, route.accepted):
        return issues.instantiate(UNSUPPORTED_CONTENT_TYPE, route.accepted)

    content: Content | None = None
    if declared.raw or route.content is not None:
        result = await read_content(route, request, media_type, issues, codec)
        if isinstance(result, Issue):
            return result
        content = result
    return ValidatedRequest(params, query, headers, content)

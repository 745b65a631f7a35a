"""Compilation of route definitions into lookup-ready validators.

Compiling happens once, when the route is declared. Every schema becomes a
``TypeAdapter`` and every declared response is indexed by ``(status, mime)``
so a request never builds validators or walks the response list.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter

from traffic.api.codec import ContentCodec
from traffic.api.schemas.routes import (
    RouteDefinition,
    compile_fields,
    content_adapter,
)
from traffic.core.exceptions import MediaTypeError, RouteDefinitionError
from traffic.core.issues import UNKNOWN, Issues
from traffic.core.mime import MediaType

type ResponseKey = tuple[int, str]


@dataclass(frozen=True, slots=True)
class CompiledResponse:
    """One declared response with its validators.

    Attributes:
        status: HTTP status sent.
        mime: The mime as declared (``json``).
        media_type: The Content-Type sent (``application/json``).
        content: Body validator, None for raw responses.
        headers: Per-header validators.
        raw: Send the payload without validation.
        optional: The body may be omitted.
    """

    status: int
    mime: str
    media_type: MediaType
    content: TypeAdapter[Any] | None
    headers: dict[str, TypeAdapter[Any]] = field(default_factory=dict)
    raw: bool = False
    optional: bool = False


@dataclass(frozen=True, slots=True)
class CompiledRoute:
    """A route definition with every schema compiled."""

    definition: RouteDefinition
    params: dict[str, TypeAdapter[Any]]
    query: dict[str, TypeAdapter[Any]]
    headers: dict[str, TypeAdapter[Any]]
    content: TypeAdapter[Any] | None
    responses: Mapping[ResponseKey, CompiledResponse]
    issues: frozenset[str]

    @property
    def accepted(self) -> tuple[str, ...]:
        """tuple[str, ...]: Request mimes as declared."""
        return self.definition.request.mime

    def lookup(self, status: int, mime: str) -> CompiledResponse | None:
        """Find the declared response for a status and mime."""
        return self.responses.get((status, mime.lower()))

    def allows(self, code: str) -> bool:
        """Check whether the handler may emit issue ``code``."""
        return code == UNKNOWN or code in self.issues


def _response_type(mime: str, codec: ContentCodec, where: str) -> MediaType:
    try:
        media_type = codec.resolve(mime)
    except MediaTypeError as exc:
        msg = f"Invalid mime {mime!r} in {where}"
        raise RouteDefinitionError(msg, {"mime": mime}, exc) from exc
    if media_type is None:
        msg = f"Unknown mime kind {mime!r} in {where}; declare the full media type"
        raise RouteDefinitionError(msg, {"mime": mime})
    return media_type


def _compile_responses(
    definition: RouteDefinition, codec: ContentCodec
) -> dict[ResponseKey, CompiledResponse]:
    table: dict[ResponseKey, CompiledResponse] = {}
    for response in definition.response:
        where = f"response {response.status}"
        content = (
            None if response.raw else content_adapter(response.content, where)
        )
        headers = compile_fields(response.headers, f"{where} headers", headers=True)

        for mime in response.mime:
            media_type = _response_type(mime, codec, where)
            if not response.raw and not codec.can_encode(media_type):
                msg = f"No encoder for {mime!r} in {where}"
                raise RouteDefinitionError(msg, {"mime": mime})

            compiled = CompiledResponse(
                status=response.status,
                mime=mime,
                media_type=media_type,
                content=content,
                headers=headers,
                raw=response.raw,
                optional=response.optional,
            )
            for key in {mime.lower(), media_type.type}:
                if (response.status, key) in table:
                    msg = f"Response {response.status} {key!r} is declared twice"
                    raise RouteDefinitionError(msg, {"status": response.status})
                table[response.status, key] = compiled
    return table


def compile_route(
    definition: RouteDefinition | Mapping[str, Any],
    issues: Issues,
    codec: ContentCodec,
) -> CompiledRoute:
    """Validate and compile a route definition.

    Args:
        definition: The definition, or a mapping to validate into one.
        issues: Registry the route's issue codes must be registered in.
        codec: Codec the declared response types must be encodable by.

    Returns:
        CompiledRoute: The compiled route.

    Raises:
        RouteDefinitionError: If the definition is malformed, names an
            unregistered issue code, or declares an unencodable response.
    """
    if not isinstance(definition, RouteDefinition):
        try:
            definition = RouteDefinition.model_validate(definition)
        except ValueError as exc:
            msg = "Invalid route definition"
            raise RouteDefinitionError(msg, {"errors": str(exc)}, exc) from exc

    request = definition.request
    if (request.content is not None or request.raw) and not request.mime:
        msg = "A request with a body must declare at least one mime"
        raise RouteDefinitionError(msg, {"path": definition.path})

    unregistered = [code for code in definition.issues if code not in issues]
    if unregistered:
        msg = f"Unregistered issue codes: {', '.join(unregistered)}"
        raise RouteDefinitionError(msg, {"issues": unregistered})

    return CompiledRoute(
        definition=definition,
        params=compile_fields(request.params, "params"),
        query=compile_fields(request.query, "query"),
        headers=compile_fields(request.headers, "headers", headers=True),
        content=(
            content_adapter(request.content, "request content")
            if request.content is not None
            else None
        ),
        responses=_compile_responses(definition, codec),
        issues=frozenset(definition.issues),
    )

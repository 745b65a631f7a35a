"""Declarative route definitions.

A route definition is static configuration: the method and path, what the
request may carry, which (status, media type) pairs the handler may answer
with, and which issue codes it may raise. Definitions are plain pydantic
models, so they can be written as nested dicts and validated with
``RouteDefinition.model_validate``.

Field schemas (params, query, headers) accept:
- ``True``: any string
- a type annotation (``int``, ``Annotated[int, Field(gt=0)]``, a model)
- a prepared ``pydantic.TypeAdapter``
- for headers only, a plain string: the header must equal it

Content schemas accept a type annotation, a ``TypeAdapter``, or a mapping of
field names to annotations (``(annotation, default)`` tuples allowed), which
is turned into a model.
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PydanticSchemaGenerationError,
    PydanticUserError,
    TypeAdapter,
    create_model,
    field_validator,
    model_validator,
)

from traffic.core.exceptions import RouteDefinitionError
from traffic.core.types import ContentSchema, FieldSchema, FieldSchemaMap

ANY_STRING: TypeAdapter[str] = TypeAdapter(str)

type Method = Literal["get", "post", "put", "patch", "delete", "head"]


def _as_tuple(value: object) -> object:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(value)
    return value


class MessageDefinition(BaseModel):
    """Shape shared by request and response declarations."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    mime: tuple[str, ...] = Field(
        default=(),
        description="Accepted media type kinds (json, plain...) or full media types",
        examples=[("json",), ("json", "plain"), ("application/ld+json",)],
    )
    headers: dict[str, Any] | None = Field(
        default=None,
        description="Per-header schemas",
    )
    content: Any = Field(
        default=None,
        description="Body schema",
    )
    raw: bool = Field(
        default=False,
        description="Skip decoding/validation and pass the body through",
    )
    optional: bool = Field(
        default=False,
        description="The body may be absent",
    )

    @field_validator("mime", mode="before")
    @classmethod
    def mime_to_tuple(cls, v: object) -> object:
        """Accept a single mime string as well as a sequence."""
        _ = cls
        return _as_tuple(v)

    @model_validator(mode="after")
    def check_raw_content(self) -> "MessageDefinition":
        """A raw message has no content schema."""
        if self.raw and self.content is not None:
            msg = "A raw message cannot declare a content schema"
            raise ValueError(msg)
        return self


class RequestDefinition(MessageDefinition):
    """What a request may carry."""

    params: dict[str, Any] | None = Field(
        default=None,
        description="Per-path-parameter schemas",
    )
    query: dict[str, Any] | None = Field(
        default=None,
        description="Per-query-parameter schemas",
    )


class ResponseDefinition(MessageDefinition):
    """One allowed (status, media type) answer."""

    status: int = Field(
        ...,
        ge=100,
        le=599,
        description="HTTP status",
        examples=[200, 201, 204],
    )

    @model_validator(mode="after")
    def check_body(self) -> "ResponseDefinition":
        """A response must name its media type and declare content or raw."""
        if not self.mime:
            msg = "A response must declare at least one mime"
            raise ValueError(msg)
        if self.content is None and not self.raw:
            msg = "A response must declare a content schema or be raw"
            raise ValueError(msg)
        return self


class RouteDefinition(BaseModel):
    """Full declaration of one route."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: Method = Field(default="get", description="HTTP method")
    path: str | None = Field(
        default=None,
        description="Starlette path template",
        examples=["/users/{id}"],
    )
    description: str | None = Field(default=None, description="Human description")
    request: RequestDefinition = Field(
        default_factory=lambda: RequestDefinition(optional=True),
        description="Request declaration; defaults to a bodiless request",
    )
    response: tuple[ResponseDefinition, ...] = Field(
        ...,
        min_length=1,
        description="Allowed responses",
    )
    issues: tuple[str, ...] = Field(
        default=(),
        description="Issue codes the handler may raise",
    )

    @field_validator("method", mode="before")
    @classmethod
    def lower_method(cls, v: object) -> object:
        """Accept methods in any case."""
        _ = cls
        return v.lower() if isinstance(v, str) else v

    @field_validator("response", mode="before")
    @classmethod
    def response_to_tuple(cls, v: object) -> object:
        """Accept a single response as well as a sequence."""
        _ = cls
        if isinstance(v, ResponseDefinition | Mapping):
            return (v,)
        return _as_tuple(v)

    @field_validator("issues", mode="before")
    @classmethod
    def issues_to_tuple(cls, v: object) -> object:
        """Accept a single issue code as well as a sequence."""
        _ = cls
        return _as_tuple(v)


def _adapter(schema: Any, where: str) -> TypeAdapter[Any]:  # noqa: ANN401 - schemas are annotations
    if isinstance(schema, TypeAdapter):
        return schema
    try:
        return TypeAdapter(schema)
    except (PydanticSchemaGenerationError, PydanticUserError, TypeError) as exc:
        msg = f"Invalid schema for {where}"
        raise RouteDefinitionError(msg, {"schema": repr(schema)}, exc) from exc


def field_adapter(schema: FieldSchema, where: str) -> TypeAdapter[Any]:
    """Compile a params/query field schema.

    Args:
        schema: ``True`` or a schema accepted by :class:`~pydantic.TypeAdapter`.
        where: Location used in error messages (``query.page``).

    Returns:
        TypeAdapter[Any]: The compiled validator.

    Raises:
        RouteDefinitionError: If the schema cannot be compiled.
    """
    if schema is True:
        return ANY_STRING
    return _adapter(schema, where)


def header_adapter(schema: FieldSchema, where: str) -> TypeAdapter[Any]:
    """Compile a header schema; a plain string demands that exact value."""
    if isinstance(schema, str):
        return TypeAdapter(Literal[schema])  # type: ignore[valid-type]
    return field_adapter(schema, where)


def content_adapter(schema: ContentSchema, where: str) -> TypeAdapter[Any]:
    """Compile a body schema; a mapping of fields becomes a model.

    Args:
        schema: An annotation, a TypeAdapter, or a field mapping.
        where: Location used in error messages.

    Returns:
        TypeAdapter[Any]: The compiled validator.

    Raises:
        RouteDefinitionError: If the schema cannot be compiled.
    """
    if isinstance(schema, Mapping):
        fields: dict[str, Any] = {
            name: annotation if isinstance(annotation, tuple) else (annotation, ...)
            for name, annotation in schema.items()
        }
        try:
            model = create_model("Content", **fields)
        except (PydanticSchemaGenerationError, PydanticUserError, TypeError) as exc:
            msg = f"Invalid schema for {where}"
            raise RouteDefinitionError(msg, {"fields": list(schema)}, exc) from exc
        return TypeAdapter(model)
    return _adapter(schema, where)


def compile_fields(
    schemas: FieldSchemaMap | None, where: str, *, headers: bool = False
) -> dict[str, TypeAdapter[Any]]:
    """Compile a per-field schema map.

    Args:
        schemas: Field name to schema, or None.
        where: Prefix used in error messages (``params``).
        headers: Compile with header rules (string literals allowed).

    Returns:
        dict[str, TypeAdapter[Any]]: Field name to compiled validator.
    """
    compile_one = header_adapter if headers else field_adapter
    return {
        name: compile_one(schema, f"{where}.{name}")
        for name, schema in (schemas or {}).items()
    }

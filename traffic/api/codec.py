"""Request body decoding and response body encoding by media type.

The codec is a small dispatch table keyed by media type "kind": the
subtype (``json``, ``plain``) or, failing that, the structured-syntax suffix
(so ``application/ld+json`` decodes as ``json``). A kind without an entry is
reported as unsupported by returning ``None``; that is a normal outcome,
not an error.

``plain`` encodes with ``str()``. Issues and other structured values sent as
``text/plain`` are therefore Python reprs meant for people reading a
terminal; clients that parse issue bodies should ask for JSON.

New kinds are added by subclassing :class:`ContentCodec` and extending the
tables in ``__init__``.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Final, NamedTuple

import orjson
from pydantic import BaseModel, ValidationError
from pydantic_core import InitErrorDetails
from starlette.exceptions import HTTPException
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from traffic.core.constants import DEFAULT_CHARSET, OCTET_STREAM
from traffic.core.exceptions import ErrorCode, Severity, TrafficError
from traffic.core.mime import MediaType

CANONICAL_TYPES: Final[dict[str, str]] = {
    "json": "application/json",
    "plain": "text/plain",
    "form-data": "multipart/form-data",
    "x-www-form-urlencoded": "application/x-www-form-urlencoded",
    "octet-stream": OCTET_STREAM,
}


class Payload(NamedTuple):
    """A decoded or encoded body. Wrapping keeps JSON ``null`` distinct from "unsupported"."""

    value: Any


class ContentDecodeError(TrafficError):
    """Raised when a body of a supported kind is malformed.

    The pipeline reports it to the client as invalid content, so it carries
    the pydantic error type describing the failure.

    Args:
        kind: The codec kind that failed.
        error_type: pydantic error type (``json_invalid``, ``string_unicode``...)
        cause: The original decoding exception
    """

    def __init__(self, kind: str, error_type: str, cause: Exception) -> None:
        super().__init__(
            ErrorCode.MALFORMED_CONTENT,
            f"Malformed {kind} content",
            Severity.LOW,
            {"kind": kind},
            cause,
        )
        self.kind = kind
        self.error_type = error_type

    def to_validation_error(self) -> ValidationError:
        """Describe the failure as a pydantic validation error.

        Returns:
            ValidationError: A single-entry error at the body root.
        """
        detail: InitErrorDetails = {"type": self.error_type, "loc": (), "input": ""}
        if self.error_type == "json_invalid":
            detail["ctx"] = {"error": str(self.cause)}
        elif self.error_type == "value_error":
            detail["ctx"] = {"error": ValueError(str(self.cause))}
        return ValidationError.from_exception_data("content", [detail])


type Decoder = Callable[[Request, MediaType], Awaitable[Any]]
type Encoder = Callable[[Any, MediaType], bytes]


def _charset(media_type: MediaType) -> str:
    return media_type.params.get("charset", DEFAULT_CHARSET)


async def decode_json(request: Request, media_type: MediaType) -> Any:  # noqa: ANN401 - JSON is untyped
    """Parse the body as JSON with orjson."""
    _ = media_type
    body = await request.body()
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise ContentDecodeError("json", "json_invalid", exc) from exc


async def decode_plain(request: Request, media_type: MediaType) -> str:
    """Read the body as text in the declared charset."""
    body = await request.body()
    try:
        return body.decode(_charset(media_type))
    except (UnicodeDecodeError, LookupError) as exc:
        raise ContentDecodeError("plain", "string_unicode", exc) from exc


async def decode_form(request: Request, media_type: MediaType) -> dict[str, Any]:
    """Parse a form body into a dict; repeated keys collect into lists."""
    try:
        form = await request.form()
    except (MultiPartException, HTTPException, KeyError) as exc:
        raise ContentDecodeError(media_type.subtype, "value_error", exc) from exc

    fields: dict[str, Any] = {}
    for key, value in form.multi_items():
        if key not in fields:
            fields[key] = value
        elif isinstance(fields[key], list):
            fields[key].append(value)
        else:
            fields[key] = [fields[key], value]
    return fields


def summarize_uploads(value: Any) -> Any:  # noqa: ANN401 - walks arbitrary form data
    """Replace uploaded files, at any depth, with their name, type and size."""
    if isinstance(value, UploadFile):
        return {
            "filename": value.filename,
            "content_type": value.content_type,
            "size": value.size,
        }
    if isinstance(value, Mapping):
        return {key: summarize_uploads(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [summarize_uploads(item) for item in value]
    return value


def encode_json(value: Any, media_type: MediaType) -> bytes:  # noqa: ANN401 - any JSON-serializable value
    """Serialize with orjson; pydantic models are dumped in JSON mode first."""
    _ = media_type
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return orjson.dumps(value)


def encode_plain(value: Any, media_type: MediaType) -> bytes:  # noqa: ANN401 - anything with a str()
    """Serialize through ``str()`` in the declared charset."""
    return str(value).encode(_charset(media_type))


class ContentCodec:
    """Dispatch table from media type kind to decoder and encoder."""

    def __init__(self) -> None:
        self.decoders: dict[str, Decoder] = {
            "json": decode_json,
            "plain": decode_plain,
            "form-data": decode_form,
            "x-www-form-urlencoded": decode_form,
        }
        self.encoders: dict[str, Encoder] = {
            "json": encode_json,
            "plain": encode_plain,
        }

    async def decode(self, request: Request, media_type: MediaType) -> Payload | None:
        """Decode the request body according to ``media_type``.

        Args:
            request: The incoming request.
            media_type: The request's declared media type.

        Returns:
            Payload | None: The decoded value, or None if no decoder matches.

        Raises:
            ContentDecodeError: If a decoder matched but the body is malformed.
        """
        for kind in media_type.kinds:
            decoder = self.decoders.get(kind)
            if decoder is not None:
                return Payload(await decoder(request, media_type))
        return None

    def encode(self, value: Any, media_type: MediaType | str) -> Payload | None:  # noqa: ANN401 - any encodable value
        """Encode ``value`` into bytes for ``media_type``.

        Args:
            value: The value to encode.
            media_type: Target media type, parsed or as a header string.

        Returns:
            Payload | None: The encoded bytes, or None if no encoder matches.

        Raises:
            TypeError: If the value cannot be represented in the media type.
            MediaTypeError: If ``media_type`` is a malformed string.
        """
        if isinstance(media_type, str):
            media_type = MediaType.parse(media_type)
        for kind in media_type.kinds:
            encoder = self.encoders.get(kind)
            if encoder is not None:
                return Payload(encoder(value, media_type))
        return None

    def can_encode(self, media_type: MediaType) -> bool:
        """Check whether an encoder exists for ``media_type``."""
        return any(kind in self.encoders for kind in media_type.kinds)

    def resolve(self, mime: str) -> MediaType | None:
        """Turn a declared mime (``json`` or ``application/json``) into a media type.

        Args:
            mime: A short kind or a full media type.

        Returns:
            MediaType | None: The media type, or None for an unknown short kind.

        Raises:
            MediaTypeError: If ``mime`` contains a slash but is malformed.
        """
        if "/" in mime:
            return MediaType.parse(mime)
        canonical = CANONICAL_TYPES.get(mime.lower())
        return MediaType.parse(canonical) if canonical else None

    def in_range(self, media: str) -> MediaType | None:
        """Pick the first encodable canonical type for a ``media/*`` range.

        Args:
            media: The top-level type of the range (``text`` for ``text/*``).

        Returns:
            MediaType | None: A canonical type the codec can produce, or None.
        """
        for canonical in CANONICAL_TYPES.values():
            media_type = MediaType.parse(canonical)
            if media_type.media == media.lower() and self.can_encode(media_type):
                return media_type
        return None

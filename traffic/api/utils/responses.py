"""JSON responses encoded by the Traffic codec.

FastAPI uses :class:`ORJSONResponse` as its default response class, and the
unsupported-content-type issue, which skips negotiation, is sent with it.
Both therefore serialize exactly like a negotiated ``json`` issue.
"""

from typing import Any, Final

from fastapi.responses import JSONResponse

from traffic.api.codec import CANONICAL_TYPES, encode_json
from traffic.core.mime import MediaType

JSON_MEDIA_TYPE: Final[MediaType] = MediaType.parse(CANONICAL_TYPES["json"])


class ORJSONResponse(JSONResponse):
    """JSONResponse rendered through :func:`~traffic.api.codec.encode_json`."""

    media_type = JSON_MEDIA_TYPE.type

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - pydantic models or JSON-serializable values
        return encode_json(content, JSON_MEDIA_TYPE)

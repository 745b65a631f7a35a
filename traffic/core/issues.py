"""Issue model and registry for structured, serializable error payloads.

An issue is the body Traffic sends whenever a request cannot be served as
declared: a schema rejected part of the request, the body could not be
decoded, or the handler broke its own response contract. Every issue has a
``code`` (a path-like key into the registry), an HTTP ``status``, and a
``deflected`` flag telling whether the client's input caused it. Factories
add whatever extra fields their code needs.

Issues are only created through :meth:`Issues.instantiate`, which stamps the
code and forces ``deflected`` to a boolean.
"""

import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Final

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from traffic.core.exceptions import UnknownIssueError

INVALID_PARAMS: Final[str] = "/traffic/request/invalid-params"
INVALID_QUERY: Final[str] = "/traffic/request/invalid-query"
INVALID_HEADERS: Final[str] = "/traffic/request/invalid-headers"
INVALID_CONTENT: Final[str] = "/traffic/request/invalid-content"
UNSUPPORTED_CONTENT_TYPE: Final[str] = "/traffic/request/unsupported-content-type"
UNSUPPORTED_CONTENT: Final[str] = "/traffic/request/unsupported-content"
UNKNOWN: Final[str] = "/traffic/unknown"

type IssueFactory = Callable[..., Mapping[str, Any]]


class Issue(BaseModel):
    """A typed, immutable error payload.

    Factory-specific fields (``description``, ``issues``, ``supported``...)
    are stored as pydantic extras and serialized alongside the base fields.
    ``headers`` travel as HTTP response headers and are left out of the body.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    code: str = Field(
        ...,
        description="Registry key identifying the issue",
        examples=["/traffic/request/invalid-query"],
    )

    status: int = Field(
        ...,
        ge=100,
        le=599,
        description="HTTP status sent with the issue",
        examples=[400, 500],
    )

    deflected: bool = Field(
        default=False,
        description="True when the client's input caused the issue",
    )

    headers: dict[str, str] | None = Field(
        default=None,
        exclude=True,
        description="Extra HTTP headers sent with the issue response",
    )


def validation_details(error: ValidationError) -> list[dict[str, Any]]:
    """Convert a pydantic validation error to JSON-safe detail entries.

    Args:
        error: The validation error raised by the schema.

    Returns:
        list[dict[str, Any]]: One entry per error with ``type``, ``loc``,
            ``msg`` and ``input``.
    """
    details: list[dict[str, Any]] = orjson.loads(error.json(include_url=False))
    return details


def _invalid_input(error: ValidationError) -> dict[str, Any]:
    details = validation_details(error)
    return {
        "status": 400,
        "deflected": True,
        "description": details[0]["msg"] if details else "Invalid input.",
        "issues": details,
    }


def _unsupported_content_type(supported: tuple[str, ...] | list[str]) -> dict[str, Any]:
    return {
        "status": 400,
        "deflected": True,
        "description": "Request content type is not supported.",
        "supported": list(supported),
    }


def _unsupported_content() -> dict[str, Any]:
    return {
        "status": 400,
        "deflected": False,
        "description": "Server is unable to parse the provided content.",
    }


def _unknown() -> dict[str, Any]:
    return {
        "status": 500,
        "deflected": False,
        "description": "Unknown server error.",
    }


TRAFFIC_ISSUES: Final[Mapping[str, IssueFactory]] = {
    INVALID_PARAMS: _invalid_input,
    INVALID_QUERY: _invalid_input,
    INVALID_HEADERS: _invalid_input,
    INVALID_CONTENT: _invalid_input,
    UNSUPPORTED_CONTENT_TYPE: _unsupported_content_type,
    UNSUPPORTED_CONTENT: _unsupported_content,
    UNKNOWN: _unknown,
}


class Issues:
    """Registry mapping issue codes to their factories.

    One registry is owned by each :class:`~traffic.api.traffic.Traffic`
    instance and shared by all of its routes. Reads and writes go through a
    lock so ``override`` can never interleave with ``instantiate``; still,
    overrides belong in the setup phase, before requests are served.

    Args:
        issues: Custom factories, merged over the built-in ones.
    """

    def __init__(self, issues: Mapping[str, IssueFactory] | None = None) -> None:
        self._factories: dict[str, IssueFactory] = {**TRAFFIC_ISSUES, **(issues or {})}
        self._lock = threading.Lock()

    def instantiate(self, code: str, *args: Any, **kwargs: Any) -> Issue:  # noqa: ANN401 - factories take arbitrary arguments
        """Build the issue registered under ``code``.

        Args:
            code: Registered issue code.
            *args: Positional arguments for the factory.
            **kwargs: Keyword arguments for the factory.

        Returns:
            Issue: The issue with ``code`` stamped and ``deflected`` a bool.

        Raises:
            UnknownIssueError: If no factory is registered under ``code``.
        """
        with self._lock:
            factory = self._factories.get(code)
        if factory is None:
            raise UnknownIssueError(code)

        fields = dict(factory(*args, **kwargs))
        fields.pop("code", None)
        fields["deflected"] = bool(fields.get("deflected") or False)
        return Issue(code=code, **fields)

    def override(self, code: str, factory: IssueFactory) -> "Issues":
        """Replace (or register) the factory for ``code``.

        Args:
            code: Issue code, new or existing.
            factory: Callable returning the non-code issue fields.

        Returns:
            Issues: This registry, for chaining.
        """
        with self._lock:
            self._factories[code] = factory
        return self

    @property
    def codes(self) -> frozenset[str]:
        """frozenset[str]: All registered issue codes."""
        with self._lock:
            return frozenset(self._factories)

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self.codes)

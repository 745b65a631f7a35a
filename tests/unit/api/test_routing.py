"""Unit tests for route compilation."""

from typing import Any

import pytest

from traffic.api.codec import ContentCodec
from traffic.api.routing import compile_route
from traffic.core.exceptions import RouteDefinitionError
from traffic.core.issues import UNKNOWN, Issues


def compile_mapping(definition: dict[str, Any], issues: Issues | None = None) -> Any:  # noqa: ANN401 - CompiledRoute
    return compile_route(definition, issues or Issues(), ContentCodec())


@pytest.mark.unit
class TestResponseTable:
    """Test the (status, mime) response table."""

    def test_short_and_full_keys(self) -> None:
        """A short kind is reachable by its kind and its canonical type."""
        route = compile_mapping(
            {"response": {"status": 200, "mime": ["json", "plain"], "content": str}}
        )

        assert set(route.responses) == {
            (200, "json"),
            (200, "application/json"),
            (200, "plain"),
            (200, "text/plain"),
        }
        assert route.lookup(200, "JSON") is route.lookup(200, "application/json")
        assert route.lookup(200, "json").media_type.type == "application/json"
        assert route.lookup(201, "json") is None

    def test_raw_full_type(self) -> None:
        """Raw responses may use any full media type."""
        route = compile_mapping(
            {"response": {"status": 200, "mime": "image/png", "raw": True}}
        )

        compiled = route.lookup(200, "image/png")
        assert compiled.raw
        assert compiled.content is None

    def test_unknown_short_kind(self) -> None:
        """Short kinds without a canonical type must be spelled out."""
        with pytest.raises(RouteDefinitionError, match="declare the full media type"):
            compile_mapping({"response": {"status": 200, "mime": "xml", "raw": True}})

    def test_unencodable_schema_response(self) -> None:
        """Validated responses need an encoder."""
        with pytest.raises(RouteDefinitionError, match="No encoder"):
            compile_mapping(
                {"response": {"status": 200, "mime": "application/xml", "content": str}}
            )

    def test_duplicate_pair(self) -> None:
        """The same (status, mime) cannot be declared twice."""
        with pytest.raises(RouteDefinitionError, match="declared twice"):
            compile_mapping(
                {
                    "response": [
                        {"status": 200, "mime": "json", "content": str},
                        {"status": 200, "mime": "application/json", "content": int},
                    ]
                }
            )


@pytest.mark.unit
class TestCompileRoute:
    """Test definition-level checks."""

    def test_compiles_request_schemas(self) -> None:
        """Every request schema becomes an adapter."""
        route = compile_mapping(
            {
                "request": {
                    "mime": "json",
                    "params": {"id": int},
                    "query": {"q": True},
                    "headers": {"x-api-version": "2"},
                    "content": {"name": str},
                },
                "response": {"status": 200, "mime": "json", "content": str},
            }
        )

        assert route.params["id"].validate_python("7") == 7
        assert route.query["q"].validate_python("x") == "x"
        assert route.headers["x-api-version"].validate_python("2") == "2"
        assert route.content is not None
        assert route.accepted == ("json",)

    def test_invalid_mapping(self) -> None:
        """Mappings that do not validate raise RouteDefinitionError."""
        with pytest.raises(RouteDefinitionError, match="Invalid route definition"):
            compile_mapping({"method": "trace", "response": []})

    def test_body_needs_mime(self) -> None:
        """A request body schema requires accepted mimes."""
        with pytest.raises(RouteDefinitionError, match="at least one mime"):
            compile_mapping(
                {
                    "request": {"content": str},
                    "response": {"status": 200, "mime": "json", "content": str},
                }
            )

    def test_unregistered_issue_code(self) -> None:
        """Declared issue codes must exist in the registry."""
        with pytest.raises(RouteDefinitionError) as exc_info:
            compile_mapping(
                {
                    "response": {"status": 200, "mime": "json", "content": str},
                    "issues": ["/users/not-found"],
                }
            )

        assert exc_info.value.context == {"issues": ["/users/not-found"]}

    def test_allowed_issue_codes(self) -> None:
        """Declared codes and /traffic/unknown are allowed; others are not."""
        issues = Issues({"/users/not-found": lambda: {"status": 404}})
        route = compile_mapping(
            {
                "response": {"status": 200, "mime": "json", "content": str},
                "issues": ["/users/not-found"],
            },
            issues,
        )

        assert route.allows("/users/not-found")
        assert route.allows(UNKNOWN)
        assert not route.allows("/traffic/request/invalid-query")

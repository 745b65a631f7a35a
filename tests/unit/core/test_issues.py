"""Unit tests for the issue model and registry."""

import threading
from typing import Any

import pytest
import pytest_check
from pydantic import TypeAdapter, ValidationError

from traffic.core.exceptions import UnknownIssueError
from traffic.core.issues import (
    INVALID_CONTENT,
    INVALID_HEADERS,
    INVALID_PARAMS,
    INVALID_QUERY,
    TRAFFIC_ISSUES,
    UNKNOWN,
    UNSUPPORTED_CONTENT,
    UNSUPPORTED_CONTENT_TYPE,
    Issue,
    Issues,
    validation_details,
)


def int_error(value: object = "abc") -> ValidationError:
    try:
        TypeAdapter(int).validate_python(value)
    except ValidationError as exc:
        return exc
    raise AssertionError("expected a validation error")


@pytest.mark.unit
class TestIssue:
    """Test the Issue model."""

    def test_extra_fields_are_kept(self) -> None:
        """Factory-specific fields are stored and serialized."""
        issue = Issue(code="/x", status=409, description="conflict", ids=[1, 2])

        assert issue.model_dump() == {
            "code": "/x",
            "status": 409,
            "deflected": False,
            "description": "conflict",
            "ids": [1, 2],
        }

    def test_headers_are_not_serialized(self) -> None:
        """Headers travel as HTTP headers, not in the body."""
        issue = Issue(code="/x", status=429, headers={"Retry-After": "5"})

        assert issue.headers == {"Retry-After": "5"}
        assert "headers" not in issue.model_dump(mode="json")

    def test_is_frozen(self) -> None:
        """Issues are immutable."""
        issue = Issue(code="/x", status=400)

        with pytest.raises(ValidationError):
            issue.status = 500  # type: ignore[misc]

    @pytest.mark.parametrize("status", [99, 600])
    def test_status_range(self, status: int) -> None:
        """Status must be a valid HTTP status."""
        with pytest.raises(ValidationError):
            Issue(code="/x", status=status)


@pytest.mark.unit
class TestValidationDetails:
    """Test conversion of pydantic errors into issue details."""

    def test_entries(self) -> None:
        """Each entry keeps type, loc, msg and input, without docs URLs."""
        details = validation_details(int_error())

        assert details[0]["loc"] == []
        assert details[0]["type"] == "int_parsing"
        assert details[0]["input"] == "abc"
        assert "url" not in details[0]


@pytest.mark.unit
class TestBuiltinIssues:
    """Test the built-in issue factories."""

    @pytest.mark.parametrize(
        "code", [INVALID_PARAMS, INVALID_QUERY, INVALID_HEADERS, INVALID_CONTENT]
    )
    def test_invalid_input(self, code: str) -> None:
        """Schema rejections are deflected 400s with the full error list."""
        issue = Issues().instantiate(code, int_error())
        body = issue.model_dump(mode="json")

        assert issue.code == code
        assert issue.status == 400
        assert issue.deflected is True
        assert body["description"] == body["issues"][0]["msg"]
        assert body["issues"][0]["type"] == "int_parsing"

    def test_unsupported_content_type(self) -> None:
        """The supported list is echoed back."""
        issue = Issues().instantiate(UNSUPPORTED_CONTENT_TYPE, ("json", "plain"))

        assert issue.status == 400
        assert issue.deflected is True
        assert issue.model_dump()["supported"] == ["json", "plain"]

    @pytest.mark.parametrize(
        ("code", "status"), [(UNSUPPORTED_CONTENT, 400), (UNKNOWN, 500)]
    )
    def test_server_side_issues_are_not_deflected(self, code: str, status: int) -> None:
        """Issues the client did not cause are not deflected."""
        issue = Issues().instantiate(code)

        assert issue.status == status
        assert issue.deflected is False
        assert issue.model_dump()["description"]

    def test_every_builtin_code_is_registered(self) -> None:
        """The registry starts with all built-in codes."""
        assert Issues().codes == frozenset(TRAFFIC_ISSUES)

    def test_builtin_issues_are_json_safe(self) -> None:
        """Every built-in issue serializes with the base fields first-class."""
        arguments: dict[str, tuple[object, ...]] = {
            code: (int_error(),)
            for code in (INVALID_PARAMS, INVALID_QUERY, INVALID_HEADERS, INVALID_CONTENT)
        }
        arguments[UNSUPPORTED_CONTENT_TYPE] = (("json",),)
        registry = Issues()

        for code in TRAFFIC_ISSUES:
            body = registry.instantiate(code, *arguments.get(code, ())).model_dump(
                mode="json"
            )
            with pytest_check.check:
                assert body["code"] == code
            with pytest_check.check:
                assert isinstance(body["deflected"], bool)
            with pytest_check.check:
                assert isinstance(body["description"], str)


@pytest.mark.unit
class TestIssues:
    """Test the issue registry."""

    def test_unknown_code_raises(self) -> None:
        """Instantiating an unregistered code is a programming error."""
        with pytest.raises(UnknownIssueError) as exc_info:
            Issues().instantiate("/users/not-found")

        assert exc_info.value.code == "/users/not-found"

    def test_code_is_stamped(self) -> None:
        """The factory cannot change the issue code."""
        issues = Issues({"/a": lambda: {"code": "/b", "status": 400}})

        assert issues.instantiate("/a").code == "/a"

    @pytest.mark.parametrize(
        ("raw", "expected"), [(None, False), (0, False), (1, True), ("yes", True)]
    )
    def test_deflected_is_forced_to_bool(self, raw: object, expected: bool) -> None:
        """Whatever the factory returns, deflected ends up a bool."""
        issues = Issues({"/a": lambda: {"status": 400, "deflected": raw}})

        deflected = issues.instantiate("/a").deflected
        assert deflected is expected

    def test_factory_arguments_are_forwarded(self) -> None:
        """Positional and keyword arguments reach the factory."""

        def not_found(kind: str, *, key: Any) -> dict[str, Any]:
            return {"status": 404, "description": f"{kind} {key} not found"}

        issue = Issues({"/not-found": not_found}).instantiate(
            "/not-found", "user", key=7
        )

        assert issue.model_dump()["description"] == "user 7 not found"

    def test_custom_factories_win(self) -> None:
        """Custom factories are merged over the built-ins."""
        issues = Issues({UNKNOWN: lambda: {"status": 503}})

        assert issues.instantiate(UNKNOWN).status == 503
        assert INVALID_QUERY in issues

    def test_override_replaces_and_chains(self) -> None:
        """override replaces a factory and returns the registry."""
        issues = Issues()

        result = issues.override(UNKNOWN, lambda: {"status": 502}).override(
            "/new", lambda: {"status": 418}
        )

        assert result is issues
        assert issues.instantiate(UNKNOWN).status == 502
        assert issues.instantiate("/new").status == 418
        assert "/new" in set(issues)

    def test_registries_are_independent(self) -> None:
        """Overrides do not leak into other registries."""
        Issues().override(UNKNOWN, lambda: {"status": 502})

        assert Issues().instantiate(UNKNOWN).status == 500

    def test_concurrent_override_and_instantiate(self) -> None:
        """Concurrent reads and writes never fail."""
        issues = Issues()
        errors: list[Exception] = []

        def writer(n: int) -> None:
            for i in range(50):
                issues.override(f"/code/{n}/{i}", lambda: {"status": 400})

        def reader() -> None:
            try:
                for _ in range(50):
                    issues.instantiate(UNKNOWN)
            except Exception as exc:  # noqa: BLE001 - collected for the assertion
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(issues.codes) == len(TRAFFIC_ISSUES) + 200

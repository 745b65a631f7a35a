"""Integration tests for Traffic routes served by the application."""

import pytest
from httpx import AsyncClient

from traffic.api.constants import CORRELATION_ID_HEADER
from traffic.core.issues import (
    INVALID_CONTENT,
    INVALID_PARAMS,
    UNKNOWN,
    UNSUPPORTED_CONTENT_TYPE,
)


@pytest.mark.integration
class TestHealth:
    """Test the built-in health route."""

    async def test_health(self, client: AsyncClient) -> None:
        """The health route answers through Traffic."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}

    async def test_correlation_id_echo(self, client: AsyncClient) -> None:
        """A client correlation ID is echoed back."""
        response = await client.get("/health", headers={CORRELATION_ID_HEADER: "abc-123"})

        assert response.headers[CORRELATION_ID_HEADER] == "abc-123"

    async def test_correlation_id_generated(self, client: AsyncClient) -> None:
        """Requests without one get a generated correlation ID."""
        response = await client.get("/health")

        assert response.headers[CORRELATION_ID_HEADER]


@pytest.mark.integration
class TestRequestValidation:
    """Test rejection of invalid requests."""

    async def test_valid_request(self, client: AsyncClient) -> None:
        """A declared response is sent as validated."""
        response = await client.get("/users/1")

        assert response.status_code == 200
        assert response.json() == {"name": "ada"}

    async def test_non_numeric_id(self, client: AsyncClient) -> None:
        """A non-numeric id is rejected as invalid params."""
        response = await client.get("/users/abc")

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == INVALID_PARAMS
        assert body["deflected"] is True

    async def test_unsupported_content_type(self, client: AsyncClient) -> None:
        """Bodies of undeclared types are rejected with the supported list."""
        response = await client.post(
            "/users", content=b"ada", headers={"content-type": "text/plain"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == UNSUPPORTED_CONTENT_TYPE
        assert body["supported"] == ["json"]

    async def test_invalid_json(self, client: AsyncClient) -> None:
        """Malformed JSON is invalid content."""
        response = await client.post(
            "/users", content=b"{", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == INVALID_CONTENT

    async def test_created(self, client: AsyncClient) -> None:
        """Valid bodies reach the handler."""
        response = await client.post("/users", json={"name": "linus"})

        assert response.status_code == 201
        assert response.json() == {"id": 3, "name": "linus"}


@pytest.mark.integration
class TestIssues:
    """Test issues emitted by handlers."""

    async def test_declared_issue(self, client: AsyncClient) -> None:
        """Declared issues are sent with their factory's fields."""
        response = await client.get("/users/9")

        assert response.status_code == 404
        assert response.json() == {
            "code": "/users/not-found",
            "status": 404,
            "deflected": True,
            "description": "User 9 does not exist.",
        }

    async def test_undeclared_raised_issue(self, client: AsyncClient) -> None:
        """Raised issues the route does not declare become /traffic/unknown."""
        response = await client.post("/users", json={"name": "ada"})

        assert response.status_code == 500
        assert response.json()["code"] == UNKNOWN

    async def test_plain_issue(self, client: AsyncClient) -> None:
        """Issues follow the Accept header."""
        response = await client.get("/users/abc", headers={"accept": "text/plain"})

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.integration
class TestContractViolations:
    """Test handlers breaking their declared contract."""

    @pytest.mark.parametrize("mode", ["undeclared", "schema", "registry", "crash"])
    async def test_unknown_issue(self, client: AsyncClient, mode: str) -> None:
        """Every defect is answered with a 500 /traffic/unknown issue."""
        response = await client.get("/broken", params={"mode": mode})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == UNKNOWN
        assert body["deflected"] is False
        assert "unexpected failure" not in response.text

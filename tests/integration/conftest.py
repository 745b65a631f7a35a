"""Shared fixtures for integration tests.

The application under test mounts a small user API through Traffic, so the
whole stack (middleware, exception handlers, pipeline, dispatch) runs for
every request.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.responses import Response

from traffic.api.context import RequestContext
from traffic.api.main import RouteEntry, create_app
from traffic.api.traffic import Traffic
from traffic.core.config import ObservabilityConfig, Settings
from traffic.core.exceptions import IssueRaised

USERS: dict[int, str] = {1: "ada", 2: "grace"}


def not_found(user_id: int) -> dict[str, Any]:
    return {
        "status": 404,
        "deflected": True,
        "description": f"User {user_id} does not exist.",
    }


async def get_user(context: RequestContext) -> Response:
    user_id = context.params["id"]
    if user_id not in USERS:
        return await context.issue("/users/not-found", user_id)
    return await context.response(200, "json", {"name": USERS[user_id]})


async def create_user(context: RequestContext) -> Response:
    name = context.content.data.name
    if name in USERS.values():
        raise IssueRaised(context.traffic.issues.instantiate("/users/not-found", 0))
    return await context.response(201, "json", {"id": 3, "name": name})


async def broken_contract(context: RequestContext) -> Response:
    if context.query["mode"] == "undeclared":
        return await context.response(418, "json", {"name": "a"})
    if context.query["mode"] == "schema":
        return await context.response(200, "json", {"name": 1})
    if context.query["mode"] == "registry":
        context.traffic.issues.instantiate("/nope")
    msg = "unexpected failure"
    raise RuntimeError(msg)


ROUTES: tuple[RouteEntry, ...] = (
    (
        {
            "method": "get",
            "path": "/users/{id}",
            "request": {"params": {"id": int}, "optional": True},
            "response": {"status": 200, "mime": "json", "content": {"name": str}},
            "issues": ["/users/not-found"],
        },
        get_user,
    ),
    (
        {
            "method": "post",
            "path": "/users",
            "request": {"mime": "json", "content": {"name": str}},
            "response": {
                "status": 201,
                "mime": "json",
                "content": {"id": int, "name": str},
            },
        },
        create_user,
    ),
    (
        {
            "method": "get",
            "path": "/broken",
            "request": {"query": {"mode": str}, "optional": True},
            "response": {"status": 200, "mime": "json", "content": {"name": str}},
        },
        broken_contract,
    ),
)


@pytest.fixture
def app_settings() -> Settings:
    """Provide settings with tracing disabled."""
    return Settings(
        app_name="TestApp",
        app_version="1.0.0",
        observability_config=ObservabilityConfig(enable_tracing=False),
    )


@pytest.fixture
async def client(app_settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create a test client for an application serving the user routes."""
    traffic = Traffic({"/users/not-found": not_found}, settings=app_settings)
    app = create_app(app_settings, traffic, ROUTES)
    # Starlette re-raises unhandled errors after the 500 response is sent
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

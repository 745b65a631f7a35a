"""Shared fixtures for unit tests."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import pytest
from starlette.requests import Request
from starlette.types import Message

from traffic.api.traffic import Traffic
from traffic.core.config import Settings

type RequestFactory = Callable[..., Request]


@pytest.fixture
def settings() -> Settings:
    """Provide a Settings object built from defaults.

    Returns:
        Settings: Settings with test defaults.
    """
    return Settings(app_name="TestApp", app_version="1.0.0")


@pytest.fixture
def traffic(settings: Settings) -> Traffic:
    """Provide a Traffic instance with the built-in issues only.

    Returns:
        Traffic: Fresh Traffic instance.
    """
    return Traffic(settings=settings)


def _receive(body: bytes) -> Callable[[], Awaitable[Message]]:
    sent = False

    async def receive() -> Message:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return receive


@pytest.fixture
def make_request() -> RequestFactory:
    """Provide a factory for Starlette requests without a running server.

    Returns:
        RequestFactory: ``make_request(method, path, query, headers, body, path_params)``
    """

    def factory(
        method: str = "GET",
        path: str = "/",
        query: str = "",
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        path_params: dict[str, Any] | None = None,
    ) -> Request:
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": query.encode(),
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in (headers or {}).items()
            ],
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
            "path_params": path_params or {},
        }
        return Request(scope, _receive(body))

    return factory

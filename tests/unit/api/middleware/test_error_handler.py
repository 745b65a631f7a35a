"""Unit tests for the global exception handlers."""

from collections.abc import Callable

import orjson
import pytest
from fastapi import FastAPI
from pytest_mock import MockerFixture
from starlette.requests import Request

from traffic.api.middleware.error_handler import (
    generic_exception_handler,
    get_traffic,
    register_exception_handlers,
    traffic_error_handler,
)
from traffic.api.traffic import Traffic
from traffic.core.exceptions import (
    ErrorCode,
    Severity,
    TrafficError,
    UnknownIssueError,
)
from traffic.core.issues import UNKNOWN

type RequestFactory = Callable[..., Request]


@pytest.fixture
def app_request(make_request: RequestFactory, traffic: Traffic) -> Request:
    """Provide a request bound to an application holding ``traffic``."""
    app = FastAPI()
    app.state.traffic = traffic
    request = make_request("GET", "/users/1", headers={"accept": "text/plain"})
    request.scope["app"] = app
    return request


@pytest.mark.unit
class TestGetTraffic:
    """Test Traffic lookup on the application state."""

    def test_from_state(self, app_request: Request, traffic: Traffic) -> None:
        """The application's instance is returned."""
        assert get_traffic(app_request) is traffic

    def test_fallback(self, make_request: RequestFactory) -> None:
        """Applications without one get a default instance."""
        request = make_request()
        request.scope["app"] = FastAPI()

        assert isinstance(get_traffic(request), Traffic)


@pytest.mark.unit
class TestTrafficErrorHandler:
    """Test TrafficError handling."""

    async def test_unknown_issue_response(self, app_request: Request) -> None:
        """Escaped TrafficErrors become /traffic/unknown in the accepted format."""
        response = await traffic_error_handler(app_request, UnknownIssueError("/nope"))

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")
        assert UNKNOWN.encode() in response.body

    @pytest.mark.parametrize(
        ("severity", "level"),
        [(Severity.LOW, "warning"), (Severity.CRITICAL, "error")],
    )
    async def test_log_level_follows_severity(
        self,
        app_request: Request,
        mocker: MockerFixture,
        severity: Severity,
        level: str,
    ) -> None:
        """Only alerting errors are logged at error level."""
        mock_logger = mocker.patch("traffic.api.middleware.error_handler.logger")
        error = TrafficError(ErrorCode.INVALID_ROUTE, "boom", severity=severity)

        await traffic_error_handler(app_request, error)

        getattr(mock_logger, level).assert_called_once()
        assert mock_logger.error.call_count + mock_logger.warning.call_count == 1

    async def test_rejects_other_exceptions(self, app_request: Request) -> None:
        """Other exception types are a registration mistake."""
        with pytest.raises(TypeError, match="Expected TrafficError"):
            await traffic_error_handler(app_request, ValueError("x"))


@pytest.mark.unit
class TestGenericExceptionHandler:
    """Test handling of unexpected exceptions."""

    async def test_unknown_issue_json(
        self, make_request: RequestFactory, traffic: Traffic
    ) -> None:
        """Unexpected errors never leak their message."""
        app = FastAPI()
        app.state.traffic = traffic
        request = make_request()
        request.scope["app"] = app

        response = await generic_exception_handler(request, RuntimeError("secret"))

        assert response.status_code == 500
        body = orjson.loads(response.body)
        assert body["code"] == UNKNOWN
        assert "secret" not in response.body.decode()

    async def test_logs_with_traceback(
        self, app_request: Request, mocker: MockerFixture
    ) -> None:
        """The exception is attached to the log record."""
        mock_logger = mocker.patch("traffic.api.middleware.error_handler.logger")
        error = RuntimeError("boom")

        await generic_exception_handler(app_request, error)

        mock_logger.opt.assert_called_once_with(exception=error)
        mock_logger.opt.return_value.error.assert_called_once()


@pytest.mark.unit
def test_register_exception_handlers() -> None:
    """Both handlers are registered."""
    app = FastAPI()

    register_exception_handlers(app)

    assert app.exception_handlers[TrafficError] is traffic_error_handler
    assert app.exception_handlers[Exception] is generic_exception_handler

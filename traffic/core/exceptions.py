"""Structured exception hierarchy for route declaration and dispatch defects.

Client input problems never raise: the validation pipeline turns them into
issues. The exceptions defined here describe programming errors in route
declarations, handlers and issue registries, which must fail loudly.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **TrafficError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: One type per kind of declaration defect

Route compilation raises these directly. Per-request defects (undeclared
response, disallowed issue code) are caught by the route, logged, and
answered with a ``/traffic/unknown`` issue instead.
"""

import hashlib
import traceback
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from traffic.core.issues import Issue


class ErrorCode(Enum):
    """Standardized error codes for Traffic exceptions."""

    UNKNOWN_ISSUE = "UNKNOWN_ISSUE"
    """An issue code was instantiated without a registered factory."""

    ISSUE_NOT_ALLOWED = "ISSUE_NOT_ALLOWED"
    """A handler raised an issue code its route does not declare."""

    UNDECLARED_RESPONSE = "UNDECLARED_RESPONSE"
    """A handler answered with a status/media type pair its route does not declare."""

    INVALID_ROUTE = "INVALID_ROUTE"
    """A route definition is malformed."""

    INVALID_MEDIA_TYPE = "INVALID_MEDIA_TYPE"
    """A media type string could not be parsed."""

    MALFORMED_CONTENT = "MALFORMED_CONTENT"
    """A request body could not be decoded as its declared media type."""

    ISSUE_RAISED = "ISSUE_RAISED"
    """A handler aborted with an issue."""


class Severity(Enum):
    """Severity levels for Traffic errors."""

    LOW = "LOW"
    """Expected conditions that are handled locally."""

    MEDIUM = "MEDIUM"
    """Conditions that may affect a single request."""

    HIGH = "HIGH"
    """Defects in route declarations or handlers."""

    CRITICAL = "CRITICAL"
    """Defects that prevent the application from serving requests."""


class TrafficError(Exception):
    """Base exception class for all Traffic exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash of the error type, code and the raising location.
        """
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "traffic/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """bool: True if the error is expected (LOW or MEDIUM severity)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """bool: True if the error should trigger alerts (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class UnknownIssueError(TrafficError):
    """Raised when an issue code has no registered factory.

    Args:
        code: The unregistered issue code
        cause: The original exception that caused this error
    """

    def __init__(self, code: str, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.UNKNOWN_ISSUE,
            f"Issue code {code!r} is not registered",
            Severity.HIGH,
            {"issue_code": code},
            cause,
        )
        self.code = code


class IssueNotAllowedError(TrafficError):
    """Raised when a handler emits an issue its route does not declare.

    Args:
        code: The issue code the handler tried to emit
        allowed: The codes declared on the route
    """

    def __init__(self, code: str, allowed: tuple[str, ...]) -> None:
        super().__init__(
            ErrorCode.ISSUE_NOT_ALLOWED,
            f"Issue code {code!r} is not declared on this route",
            Severity.HIGH,
            {"issue_code": code, "allowed": list(allowed)},
        )
        self.code = code


class UndeclaredResponseError(TrafficError):
    """Raised when a handler answers with an undeclared status/media type pair.

    Args:
        status: The HTTP status the handler asked for
        mime: The media type the handler asked for
    """

    def __init__(self, status: int, mime: str) -> None:
        super().__init__(
            ErrorCode.UNDECLARED_RESPONSE,
            f"Response {status} {mime!r} is not declared on this route",
            Severity.HIGH,
            {"status": status, "mime": mime},
        )
        self.status = status
        self.mime = mime


class RouteDefinitionError(TrafficError):
    """Raised at compile time when a route definition is malformed.

    Args:
        message: Description of the defect
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.INVALID_ROUTE, message, Severity.CRITICAL, context, cause
        )


class MediaTypeError(TrafficError, ValueError):
    """Raised when a media type string cannot be parsed.

    Args:
        value: The offending header value
        cause: The original exception that caused this error
    """

    def __init__(self, value: str, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.INVALID_MEDIA_TYPE,
            f"Invalid media type {value!r}",
            Severity.LOW,
            {"value": value},
            cause,
        )
        self.value = value


class IssueRaised(TrafficError):
    """Raised by a handler to abort with an issue response.

    The route catches it and emits ``issue`` exactly as ``context.issue`` would.

    Args:
        issue: The issue to send to the client
    """

    def __init__(self, issue: "Issue") -> None:
        super().__init__(
            ErrorCode.ISSUE_RAISED,
            f"Handler raised issue {issue.code}",
            Severity.LOW,
            {"issue_code": issue.code, "status": issue.status},
        )
        self.issue = issue

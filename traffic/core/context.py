"""Correlation ID of the request being served.

The request context middleware opens a :func:`correlation_scope` around each
request. Inside it, :func:`get_correlation_id` returns the ID and every
Loguru record carries it, so issue logs, defect logs and trace spans of one
request can be grouped.
"""

import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar

from loguru import logger

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, None outside a scope."""
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Generator[str]:
    """Bind a correlation ID to the current context and its log records.

    Args:
        correlation_id: The client's ID; a new one is generated when empty.

    Yields:
        str: The bound correlation ID.
    """
    value = correlation_id or generate_correlation_id()
    token = _correlation_id.set(value)
    try:
        with logger.contextualize(correlation_id=value):
            yield value
    finally:
        _correlation_id.reset(token)

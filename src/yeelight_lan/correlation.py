"""
Correlation ID tracking across async operations.

A correlation ID follows one logical operation (a discovery round, a dispatcher
command, an HTTP request) through the registry, the session and the socket so
every log line it produces can be grouped. IDs are prefixed with the kind of
operation that started them (``cmd-3f9a01c2``, ``discovery-77b0e4d1``).

Stored in a contextvar, so each asyncio task sees its own value; tasks copy
the value of the context they were created in.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

DEFAULT_KIND = "op"

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "yeelight_correlation_id",
    default=None,
)


def generate_correlation_id(kind: str = DEFAULT_KIND) -> str:
    """Return a new ID such as ``cmd-3f9a01c2``."""
    return f"{kind}-{uuid.uuid4().hex[:8]}"


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear with None) the correlation ID of the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    *,
    kind: str = DEFAULT_KIND,
    inherit: bool = False,
) -> Generator[str]:
    """
    Scope a correlation ID, restoring the previous one on exit.

    Args:
        correlation_id: ID to use; generated from ``kind`` when None
        kind: Prefix of a generated ID
        inherit: Keep the caller's ID when one is already active

    Yields:
        The correlation ID active inside the block

    Example:
        with correlation_context(kind="cmd", inherit=True):
            await session.send("toggle")
    """
    previous_id = get_correlation_id()

    if correlation_id is None:
        correlation_id = previous_id if inherit and previous_id else generate_correlation_id(kind)

    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous_id)


def ensure_correlation_id(kind: str = DEFAULT_KIND) -> str:
    """
    Return the current correlation ID, generating one if none is set.

    For long-lived task entry points such as the periodic discovery loop,
    where there is no block to scope the ID to.
    """
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id(kind)
        set_correlation_id(current_id)
    return current_id

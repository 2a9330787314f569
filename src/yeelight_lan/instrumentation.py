"""
Performance instrumentation for network operations.

``timed`` and ``timed_async`` wrap a function in ``timing``, which logs the
elapsed time at DEBUG and escalates to WARNING once YEELIGHT_PERF_THRESHOLD_MS
is exceeded. Disabled with YEELIGHT_PERF_TRACKING=0.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Awaitable, Callable, Generator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from yeelight_lan import const
from yeelight_lan.logging_abstraction import get_logger

__all__ = [
    "measure_time",
    "timed",
    "timed_async",
    "timing",
]

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (a ``time.perf_counter()`` value)."""
    return (time.perf_counter() - start_time) * 1000


@contextmanager
def timing(operation: str) -> Generator[None]:
    """Log how long the block took; a no-op while tracking is disabled."""
    if not const.YEELIGHT_PERF_TRACKING:
        yield
        return

    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = measure_time(started)
        threshold_ms = const.YEELIGHT_PERF_THRESHOLD_MS
        slow = elapsed_ms > threshold_ms
        logger.log(
            "warning" if slow else "debug",
            "⏱️ [%s] completed in %.1fms (threshold: %dms)",
            operation,
            elapsed_ms,
            threshold_ms,
            extra={
                "operation": operation,
                "duration_ms": round(elapsed_ms, 2),
                "exceeded_threshold": slow,
            },
        )


def timed(operation_name: str | None = None) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Time a synchronous function.

    Example:
        @timed("parse_headers")
        def parse(raw): ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with timing(name):
                return func(*args, **kwargs)

        return wrapper

    return decorator


def timed_async(operation_name: str | None = None) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Async counterpart of ``timed``, e.g. ``@timed_async("discovery_round")``."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with timing(name):
                return await func(*args, **kwargs)

        return wrapper

    return decorator

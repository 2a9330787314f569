"""Reconnect policy and timeout configuration for device sessions."""

from __future__ import annotations

import random

from yeelight_lan.const import (
    YEELIGHT_COMMAND_TIMEOUT,
    YEELIGHT_CONNECT_TIMEOUT,
    YEELIGHT_RECONNECT_ATTEMPTS,
    YEELIGHT_RECONNECT_DELAY,
)


class TimeoutConfig:
    """Timeouts applied by a session.

    Attributes:
        connect_timeout_seconds: TCP connect deadline
        command_timeout_seconds: Default wait for a command result
        write_timeout_seconds: Deadline for flushing one command line
    """

    def __init__(
        self,
        connect_timeout_seconds: float = YEELIGHT_CONNECT_TIMEOUT,
        command_timeout_seconds: float = YEELIGHT_COMMAND_TIMEOUT,
        write_timeout_seconds: float | None = None,
    ):
        self.connect_timeout_seconds = connect_timeout_seconds
        self.command_timeout_seconds = command_timeout_seconds
        self.write_timeout_seconds = write_timeout_seconds or command_timeout_seconds

    def __repr__(self) -> str:
        """String representation showing all timeouts."""
        return (
            f"TimeoutConfig(connect={self.connect_timeout_seconds:.1f}s, "
            f"command={self.command_timeout_seconds:.1f}s, "
            f"write={self.write_timeout_seconds:.1f}s)"
        )


class ReconnectPolicy:
    """Bounded fixed-delay reconnect policy.

    A faulted session waits ``delay_seconds`` (plus optional jitter) before
    each of at most ``max_attempts`` reconnect attempts.
    """

    def __init__(
        self,
        delay_seconds: float = YEELIGHT_RECONNECT_DELAY,
        max_attempts: int = YEELIGHT_RECONNECT_ATTEMPTS,
        jitter_factor: float = 0.0,
    ):
        """Initialize reconnect policy.

        Args:
            delay_seconds: Delay before every reconnect attempt (default: 5.0s)
            max_attempts: Attempts before the device is reported unreachable (default: 3)
            jitter_factor: Jitter as fraction of delay (default: 0, no jitter)
        """
        self.delay_seconds = delay_seconds
        self.max_attempts = max_attempts
        self.jitter_factor = jitter_factor

    def get_delay(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (0-indexed).

        The delay is fixed; ``attempt`` is accepted so the policy can be
        swapped for a backoff one without touching the session.
        """
        del attempt
        jitter = random.uniform(0, self.delay_seconds * self.jitter_factor) if self.jitter_factor else 0.0
        return self.delay_seconds + jitter

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def __repr__(self) -> str:
        """String representation of reconnect policy."""
        return (
            f"ReconnectPolicy(delay={self.delay_seconds}s, "
            f"max_attempts={self.max_attempts}, "
            f"jitter_factor={self.jitter_factor})"
        )

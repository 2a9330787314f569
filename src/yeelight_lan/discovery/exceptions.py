"""Exception types for discovery errors."""

from __future__ import annotations

from yeelight_lan.exceptions import YeelightError


class DiscoveryFailedError(YeelightError):
    """A discovery round could not run.

    Raised when:
    - The UDP socket cannot be created or bound
    - The search request cannot be sent

    Raised once to the caller of the round; the round is not retried.

    Attributes:
        reason: Specific failure reason
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Discovery failed: {reason}")

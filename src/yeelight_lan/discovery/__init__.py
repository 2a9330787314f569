"""Multicast discovery of bulbs."""

from yeelight_lan.discovery.engine import DiscoveryEngine, DiscoveryReply
from yeelight_lan.discovery.exceptions import DiscoveryFailedError

__all__ = [
    "DiscoveryEngine",
    "DiscoveryFailedError",
    "DiscoveryReply",
]

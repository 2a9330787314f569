"""Root of the yeelight-lan exception hierarchy."""

from __future__ import annotations


class YeelightError(Exception):
    """Base exception for every error raised by yeelight-lan.

    Protocol, transport, discovery and registry errors all derive from it so a
    caller can catch everything the library raises with one clause.
    """

"""mircli exception hierarchy."""

from __future__ import annotations


class MircliError(Exception):
    """Base exception for all mircli-specific errors."""


class InvalidURLError(MircliError, ValueError):
    """Raised when a target URL cannot be normalized into a navigable address."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Invalid URL provided: {raw}")


class SessionLaunchError(MircliError):
    """Raised when the browser session cannot be started."""


class NavigationError(MircliError):
    """Raised when the single navigation attempt fails.

    Attributes:
        url: The URL that was being navigated to.
        reason: Short human-readable cause (e.g. ``name not resolved``).
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation failed for URL: {url} ({reason})")


class CaptureError(MircliError):
    """Raised when no snapshot of the document could be obtained."""

"""URL normalization and single-attempt page navigation.

Navigation waits only for ``domcontentloaded`` so an early snapshot can be
taken before any lengthy settlement wait. It is attempted exactly once;
failures surface immediately as ``NavigationError``.
"""

from __future__ import annotations

import contextlib
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from mircli.exceptions import InvalidURLError, NavigationError
from mircli.settings.config import DEFAULT_URL

if TYPE_CHECKING:
    from playwright.async_api import Page, Response

logger = logging.getLogger(__name__)

# Playwright error substrings mapped to a short reason for the error report.
_KNOWN_NET_ERRORS: tuple[str, ...] = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_CONNECTION_TIMED_OUT",
    "ERR_SSL_PROTOCOL_ERROR",
    "ERR_CERT_AUTHORITY_INVALID",
    "ERR_CERT_COMMON_NAME_INVALID",
    "ERR_ADDRESS_UNREACHABLE",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_PROXY_CONNECTION_FAILED",
    "ERR_TUNNEL_CONNECTION_FAILED",
    "ERR_ABORTED",
)

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_BAD_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`]")


@dataclass(frozen=True)
class NavigationRequest:
    """A normalized navigation target and its time budget."""

    url: str
    timeout_ms: int


def normalize_url(raw: str | None, default: str = DEFAULT_URL) -> str:
    """Return a scheme-qualified URL for *raw*.

    Empty or missing input yields *default*; input without an ``http(s)://``
    prefix gets ``https://``.

    Raises:
        InvalidURLError: If the result cannot be parsed as a URL with a host.
    """
    if raw is None or not isinstance(raw, str) or not raw.strip():
        return default

    candidate = raw.strip()
    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        parts.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError as exc:
        raise InvalidURLError(raw) from exc

    host = parts.hostname or ""
    if not host or _BAD_HOST_CHARS.search(parts.netloc):
        raise InvalidURLError(raw)
    return candidate


def _failure_reason(exc: PlaywrightError) -> str:
    message = str(exc)
    for pattern in _KNOWN_NET_ERRORS:
        if pattern in message:
            return pattern.replace("ERR_", "").replace("_", " ").lower()
    if isinstance(exc, PlaywrightTimeout):
        return "timeout"
    return message.splitlines()[0] if message else exc.__class__.__name__


async def navigate(page: Page, request: NavigationRequest) -> Response | None:
    """Navigate once to ``request.url``, waiting for ``domcontentloaded`` only.

    Raises:
        NavigationError: On any Playwright navigation failure.
    """
    logger.info("Navigating to %s", request.url)
    try:
        return await page.goto(request.url, wait_until="domcontentloaded", timeout=request.timeout_ms)
    except PlaywrightError as exc:
        reason = _failure_reason(exc)
        logger.error("Navigation failed for URL: %s (%s)", request.url, reason)
        raise NavigationError(request.url, reason) from exc


async def wait_for_body(page: Page, timeout_ms: int) -> bool:
    """Best-effort wait for ``<body>``; returns whether it appeared in time."""
    with contextlib.suppress(PlaywrightError):
        await page.wait_for_selector("body", timeout=timeout_ms)
        return True
    logger.debug("<body> not present after %dms, continuing", timeout_ms)
    return False

"""Browser session lifecycle: launch, CDP overrides, guaranteed teardown.

``open_browser_session`` is the only place a browser process is started. It
yields a ``BrowserSession`` and, on every exit path, either closes the
persistent context (terminating the browser) or, when retention was
explicitly requested for a headful browser, waits for the user to close it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError, async_playwright

from mircli.browser.cancellation import SessionEndedSignal
from mircli.exceptions import SessionLaunchError

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, CDPSession, Page

    from mircli.browser.stealth import BrowserProfile
    from mircli.settings.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """Handles for one browser run, owned by the orchestrator."""

    context: BrowserContext
    page: Page
    cdp: CDPSession
    profile: BrowserProfile
    ended: SessionEndedSignal
    retain: bool = False

    @property
    def closed(self) -> bool:
        return self.ended.is_set or self.page.is_closed()


async def apply_cdp_overrides(cdp: CDPSession, profile: BrowserProfile, accept_language: str = "") -> None:
    """Enable the Network domain and override UA client hints through CDP."""
    await cdp.send("Network.enable")
    ua = profile.user_agent
    if ua is None:
        return
    params: dict[str, Any] = {
        "userAgent": ua.user_agent,
        "platform": ua.platform,
        "userAgentMetadata": ua.metadata,
    }
    if accept_language:
        params["acceptLanguage"] = accept_language
    await cdp.send("Network.setUserAgentOverride", params)


async def _prepare(context: BrowserContext, profile: BrowserProfile, settings: Settings, ended: SessionEndedSignal) -> BrowserSession:
    try:
        page = context.pages[0] if context.pages else await context.new_page()
        cdp = await context.new_cdp_session(page)
        await apply_cdp_overrides(cdp, profile, settings.browser.accept_language)
    except PlaywrightError as exc:
        raise SessionLaunchError(f"Browser session setup failed: {exc}") from exc
    return BrowserSession(
        context=context,
        page=page,
        cdp=cdp,
        profile=profile,
        ended=ended,
        retain=settings.output.stay_open,
    )


async def _retain(session: BrowserSession | None) -> None:
    if session is None or not session.retain or session.ended.is_set:
        return
    if session.profile.launch_args.get("headless"):
        logger.warning("--stayopen ignored for a headless browser")
        return
    logger.info("Keeping browser open; close it to exit")
    await session.ended.wait()


async def _close(context: BrowserContext) -> None:
    try:
        await context.close()
    except PlaywrightError:
        logger.debug("Browser context already closed", exc_info=True)


@asynccontextmanager
async def open_browser_session(settings: Settings, profile: BrowserProfile) -> AsyncIterator[BrowserSession]:
    """Launch Chromium on the configured persistent profile and yield the session.

    Raises:
        SessionLaunchError: If the browser or its first page cannot be started.
    """
    user_data_dir = Path(settings.browser.user_data_dir)
    try:
        user_data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SessionLaunchError(f"Cannot create profile directory {user_data_dir}: {exc}") from exc

    async with async_playwright() as pw:
        try:
            context = await pw.chromium.launch_persistent_context(str(user_data_dir), **profile.launch_args)
        except PlaywrightError as exc:
            raise SessionLaunchError(f"Browser launch failed: {exc}") from exc
        logger.info("Launched Chromium: %s", profile.describe())

        ended = SessionEndedSignal()
        session: BrowserSession | None = None
        try:
            with ended.watch(context=context, browser=context.browser):
                try:
                    session = await _prepare(context, profile, settings, ended)
                    with ended.watch(page=session.page):
                        yield session
                finally:
                    await _retain(session)
        finally:
            await _close(context)

"""Browser launch profile: viewport, user-agent client hints, launch arguments.

Provides a unified ``BrowserProfile`` that configures Playwright's
``launch_persistent_context()`` call and the CDP user-agent override with:

- A randomized real-world viewport size
- A randomized desktop Chrome user-agent with full UA-CH metadata
- Locale / timezone / Accept-Language matching the configured locale
- Chromium flags that keep the browser close to a regular install

Selection is random by design. Pass a seeded ``random.Random`` for
reproducible profiles.

Usage::

    profile = build_browser_profile(settings, rng=random.Random(7))
    context = await pw.chromium.launch_persistent_context(user_data_dir, **profile.launch_args)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mircli.settings.config import HeadlessMode

if TYPE_CHECKING:
    from mircli.settings.config import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------

# Common viewport sizes (width × height)
_VIEWPORTS: list[dict[str, int]] = [
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
    {"width": 1920, "height": 1080},
    {"width": 1600, "height": 900},
]


def _ua_metadata(major: str, full: str, platform: str, platform_version: str) -> dict[str, Any]:
    return {
        "brands": [
            {"brand": "Chromium", "version": major},
            {"brand": "Not;A=Brand", "version": "24"},
            {"brand": "Google Chrome", "version": major},
        ],
        "fullVersionList": [
            {"brand": "Chromium", "version": full},
            {"brand": "Not;A=Brand", "version": "24.0.0.0"},
            {"brand": "Google Chrome", "version": full},
        ],
        "platform": platform,
        "platformVersion": platform_version,
        "architecture": "x86",
        "model": "",
        "mobile": False,
        "bitness": "64",
        "wow64": False,
    }


@dataclass(frozen=True)
class UserAgentProfile:
    """A user-agent string with the platform and client-hint metadata that match it."""

    user_agent: str
    platform: str
    metadata: dict[str, Any] = field(hash=False, compare=False)


_USER_AGENTS: list[UserAgentProfile] = [
    UserAgentProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
        "Windows",
        _ua_metadata("126", "126.0.6478.55", "Windows", "15.0.0"),
    ),
    UserAgentProfile(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
        "Linux",
        _ua_metadata("125", "125.0.6422.78", "Linux", "6.0.0"),
    ),
]

# Chromium flags applied to every launch
_BASE_CHROME_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
    "--password-store=basic",
    "--autoplay-policy=no-user-gesture-required",
    "--enable-features=NetworkService,NetworkServiceInProcess",
    "--force-webrtc-ip-handling-policy=default_public_interface_only",
    "--disable-dev-shm-usage",
)

# Playwright adds this by default; it is the most obvious automation tell.
_IGNORED_DEFAULT_ARGS: list[str] = ["--enable-automation"]


# ---------------------------------------------------------------------------
# Browser profile
# ---------------------------------------------------------------------------


@dataclass
class BrowserProfile:
    """All Playwright launch arguments for a single session.

    Generated by ``build_browser_profile()`` with randomized values.
    """

    # Arguments for pw.chromium.launch_persistent_context() (user_data_dir excluded)
    launch_args: dict[str, Any] = field(default_factory=dict)

    # Metadata for logging / the CDP user-agent override
    user_agent: UserAgentProfile | None = None
    viewport: dict[str, int] = field(default_factory=dict)
    locale: str = ""
    timezone_id: str = ""
    proxy_url: str = ""

    def describe(self) -> str:
        """One-line summary of the fingerprint-relevant choices, for the launch log."""
        size = f"{self.viewport['width']}x{self.viewport['height']}" if self.viewport else "-"
        platform = self.user_agent.platform if self.user_agent else "-"
        return f"viewport={size} ua={platform} locale={self.locale} timezone={self.timezone_id} proxy={self.proxy_url or '-'}"


def pick_viewport(rng: random.Random) -> dict[str, int]:
    return dict(rng.choice(_VIEWPORTS))


def pick_user_agent(rng: random.Random) -> UserAgentProfile:
    return rng.choice(_USER_AGENTS)


def build_browser_profile(settings: Settings, *, rng: random.Random | None = None) -> BrowserProfile:
    """Build a ``BrowserProfile`` from *settings*.

    Args:
        settings: Resolved settings (browser, timing and stealth sections are used).
        rng: Source of randomness for viewport / user-agent selection.

    Returns:
        A ``BrowserProfile`` ready for ``launch_persistent_context``.
    """
    rng = rng or random.Random()
    browser = settings.browser
    profile = BrowserProfile(locale=browser.locale, timezone_id=browser.timezone_id)

    if settings.stealth.randomize_fingerprint:
        profile.viewport = pick_viewport(rng)
        profile.user_agent = pick_user_agent(rng)
    else:
        profile.viewport = dict(_VIEWPORTS[0])
        profile.user_agent = _USER_AGENTS[0]

    width, height = profile.viewport["width"], profile.viewport["height"]
    args = [f"--lang={browser.locale}", f"--window-size={width},{height}", *_BASE_CHROME_ARGS]

    launch = profile.launch_args
    launch["headless"] = browser.headless.is_headless
    launch["args"] = args
    launch["ignore_default_args"] = list(_IGNORED_DEFAULT_ARGS)
    launch["no_viewport"] = True
    launch["timeout"] = settings.timing.navigation_timeout_ms
    launch["locale"] = browser.locale
    launch["timezone_id"] = browser.timezone_id
    launch["user_agent"] = profile.user_agent.user_agent
    launch["extra_http_headers"] = {"Accept-Language": browser.accept_language}

    if browser.chrome_path:
        launch["executable_path"] = browser.chrome_path
    elif browser.headless is HeadlessMode.NEW:
        # The full "chromium" channel runs Chromium's new headless mode.
        launch["channel"] = "chromium"

    proxy_url = browser.proxy.strip()
    if proxy_url:
        launch["proxy"] = {"server": proxy_url}
        profile.proxy_url = proxy_url
        logger.debug("Using proxy: %s", proxy_url)

    logger.debug(
        "Profile: viewport=%dx%d ua=%s headless=%s",
        width,
        height,
        profile.user_agent.platform,
        browser.headless.value,
    )
    return profile

"""Tests for CDP overrides and end-of-session retention."""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from mircli.browser.cancellation import SessionEndedSignal
from mircli.browser.launcher import BrowserSession, _retain, apply_cdp_overrides, open_browser_session
from mircli.browser.stealth import build_browser_profile
from mircli.exceptions import SessionLaunchError
from mircli.settings.config import HeadlessMode


def _session(settings, *, retain: bool) -> BrowserSession:
    page = MagicMock()
    page.is_closed.return_value = False
    return BrowserSession(
        context=MagicMock(),
        page=page,
        cdp=MagicMock(),
        profile=build_browser_profile(settings, rng=random.Random(0)),
        ended=SessionEndedSignal(),
        retain=retain,
    )


class TestCdpOverrides:
    @pytest.mark.anyio
    async def test_user_agent_override(self, settings):
        cdp = MagicMock()
        cdp.send = AsyncMock()
        profile = build_browser_profile(settings, rng=random.Random(0))
        await apply_cdp_overrides(cdp, profile, "ru-RU,ru;q=0.9")

        methods = [call.args[0] for call in cdp.send.await_args_list]
        assert methods == ["Network.enable", "Network.setUserAgentOverride"]
        params = cdp.send.await_args_list[1].args[1]
        assert params["userAgent"] == profile.user_agent.user_agent
        assert params["userAgentMetadata"]["platform"] == profile.user_agent.platform
        assert params["acceptLanguage"] == "ru-RU,ru;q=0.9"


class TestRetain:
    @pytest.mark.anyio
    async def test_not_retained_returns_immediately(self, settings):
        await asyncio.wait_for(_retain(_session(settings, retain=False)), timeout=1.0)

    @pytest.mark.anyio
    async def test_headless_ignores_stay_open(self, settings):
        settings.browser.headless = HeadlessMode.ON
        await asyncio.wait_for(_retain(_session(settings, retain=True)), timeout=1.0)

    @pytest.mark.anyio
    async def test_headful_waits_for_user_close(self, settings):
        session = _session(settings, retain=True)
        asyncio.get_running_loop().call_later(0.02, session.ended.fire, "browser context closed")
        await asyncio.wait_for(_retain(session), timeout=1.0)
        assert session.ended.reason == "browser context closed"

    def test_closed_reflects_page_state(self, settings):
        session = _session(settings, retain=False)
        assert not session.closed
        session.page.is_closed.return_value = True
        assert session.closed


class TestOpenBrowserSession:
    @pytest.mark.anyio
    async def test_uncreatable_profile_dir_is_a_launch_error(self, settings, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        settings.browser.user_data_dir = str(blocker / "profile")
        profile = build_browser_profile(settings, rng=random.Random(0))
        with pytest.raises(SessionLaunchError, match="Cannot create profile directory"):
            async with open_browser_session(settings, profile):
                pass

    @pytest.mark.anyio
    async def test_orchestrator_reports_profile_dir_failure(self, settings, tmp_path):
        from mircli.models.results import RunStatus
        from mircli.orchestrator import SessionOrchestrator

        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        settings.browser.user_data_dir = str(blocker / "profile")
        result = await SessionOrchestrator(settings, rng=random.Random(0)).run("example.com", tmp_path / "o.html")
        assert result.status is RunStatus.FAILED
        assert "Cannot create profile directory" in result.error
        assert not (tmp_path / "o.html").exists()

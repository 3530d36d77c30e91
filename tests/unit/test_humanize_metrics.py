"""Tests for scroll jitter, pre-navigation pause and stage timings."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from mircli.browser import humanize
from mircli.browser.humanize import human_scroll, pre_navigation_pause
from mircli.browser.metrics import StageTimer


@pytest.fixture()
def _fast_sleep(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr(humanize, "asyncio", MagicMock(sleep=sleep))
    return sleep


class TestHumanize:
    @pytest.mark.anyio
    async def test_scroll_steps_and_amounts(self, _fast_sleep):
        page = MagicMock()
        page.mouse.wheel = AsyncMock()
        steps = await human_scroll(page, random.Random(5))
        assert steps in (1, 2)
        assert page.mouse.wheel.await_count == steps
        for call in page.mouse.wheel.await_args_list:
            dx, dy = call.args
            assert dx == 0
            assert 120 <= dy <= 400

    @pytest.mark.anyio
    async def test_pause_range(self, _fast_sleep):
        for seed in range(20):
            pause = await pre_navigation_pause(random.Random(seed))
            assert 0.25 <= pause <= 0.75


class TestStageTimer:
    def test_records_even_on_error(self):
        timer = StageTimer()
        with pytest.raises(RuntimeError):
            with timer.stage("navigate"):
                raise RuntimeError("boom")
        assert timer.get("navigate") is not None
        assert "navigate" in timer.summary()

    def test_repeated_stage_accumulates(self):
        timer = StageTimer()
        with timer.stage("idle-like"):
            pass
        with timer.stage("idle-like"):
            pass
        assert list(timer.summary()) == ["idle-like"]
        assert timer.get("missing") is None

"""Coarse human-like scroll jitter.

One or two mouse-wheel steps with short random pauses, performed while the
network is still busy after the early snapshot. Nothing finer-grained than
that is attempted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


async def human_scroll(page: Page, rng: random.Random | None = None) -> int:
    """Scroll down by a small random amount; returns the number of wheel steps."""
    rng = rng or random.Random()
    steps = 1 + rng.randrange(2)
    for _ in range(steps):
        await page.mouse.wheel(0, 120 + rng.random() * 280)
        await asyncio.sleep((80 + rng.random() * 180) / 1000)
    logger.debug("Scrolled %d step(s)", steps)
    return steps


async def pre_navigation_pause(rng: random.Random | None = None) -> float:
    """Sleep 250–750 ms before navigating; returns the pause in seconds."""
    rng = rng or random.Random()
    pause = (250 + rng.random() * 500) / 1000
    await asyncio.sleep(pause)
    return pause

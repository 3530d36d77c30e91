"""Challenge detection tests.

Validates:
  - ``detect_challenge()`` reports the first matching rule, in rule order.
  - A plain document yields no detection.
  - New heuristics can be added as data.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from mircli.browser.challenge import (
    CHALLENGE_RULES,
    ChallengeRule,
    ChallengeVerdict,
    detect_challenge,
)


# ---------------------------------------------------------------------------
# Helpers: mock Page whose query_selector matches a fixed set of selectors
# ---------------------------------------------------------------------------


def _mock_page(*present: str) -> MagicMock:
    """Return a page where any of *present* (individual selectors) matches."""
    page = MagicMock()

    async def query_selector(selector: str):
        parts = [p.strip() for p in selector.split(", ")]
        return MagicMock() if any(p in present for p in parts) else None

    page.query_selector = AsyncMock(side_effect=query_selector)
    return page


class TestDetectChallenge:
    @pytest.mark.anyio
    async def test_plain_document(self):
        verdict = await detect_challenge(_mock_page())
        assert not verdict.detected
        assert verdict.describe() == "no challenge detected"

    @pytest.mark.anyio
    async def test_site_key_detected(self):
        verdict = await detect_challenge(_mock_page("[data-sitekey]"))
        assert verdict.detected
        assert verdict.label == "site-key"
        assert verdict.describe() == "Possible anti-bot challenge element present (site-key)"

    @pytest.mark.anyio
    async def test_turnstile_iframe(self):
        verdict = await detect_challenge(_mock_page('iframe[src*="turnstile"]'))
        assert verdict.label == "challenge-iframe"

    @pytest.mark.anyio
    async def test_captcha_form_field(self):
        verdict = await detect_challenge(_mock_page('input[name="cf_captcha_token"]'))
        assert verdict.label == "captcha-form-field"

    @pytest.mark.anyio
    async def test_first_rule_wins(self):
        page = _mock_page('[id*="challenge"]', "[data-sitekey]")
        verdict = await detect_challenge(page)
        assert verdict.label == "challenge-element"
        assert page.query_selector.await_count == 1

    @pytest.mark.anyio
    async def test_every_rule_consulted_when_nothing_matches(self):
        page = _mock_page()
        await detect_challenge(page)
        assert page.query_selector.await_count == len(CHALLENGE_RULES)

    @pytest.mark.anyio
    async def test_extra_rule(self):
        rules = (*CHALLENGE_RULES, ChallengeRule("ddos-guard", ("#ddg-captcha",)))
        verdict = await detect_challenge(_mock_page("#ddg-captcha"), rules)
        assert verdict.label == "ddos-guard"
        assert verdict.selector == "#ddg-captcha"

    @pytest.mark.anyio
    async def test_page_errors_propagate(self):
        page = MagicMock()
        page.query_selector = AsyncMock(side_effect=PlaywrightError("Target page, context or browser has been closed"))
        with pytest.raises(PlaywrightError):
            await detect_challenge(page)


class TestChallengeVerdict:
    def test_unknown_verdict(self):
        verdict = ChallengeVerdict(error="Target closed")
        assert verdict.unknown
        assert not verdict.detected
        assert verdict.describe() == "challenge verdict unknown"

    def test_rule_selector_is_joined(self):
        rule = ChallengeRule("x", ("a", "b"))
        assert rule.selector == "a, b"

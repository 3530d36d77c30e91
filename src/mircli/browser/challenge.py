"""Anti-bot challenge detection (advisory).

Scans the rendered document against an ordered list of declarative rules;
the first rule whose selector matches wins. Detection is logged and never
aborts extraction: even a challenge-gated page can hold useful markup, and
the caller always wants some artifact.

New heuristics are added by appending a ``ChallengeRule`` to
``CHALLENGE_RULES``; the scan loop does not change.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeRule:
    """A labelled CSS-selector predicate over the rendered document."""

    label: str
    selectors: tuple[str, ...]

    @property
    def selector(self) -> str:
        return ", ".join(self.selectors)

    async def matches(self, page: Page) -> bool:
        return await page.query_selector(self.selector) is not None


@dataclass
class ChallengeVerdict:
    """Result of a challenge scan.

    ``error`` is set when the scan itself failed, in which case the verdict is
    unknown and ``detected`` stays ``False``.
    """

    detected: bool = False
    label: str = ""
    selector: str = ""
    error: str = ""

    @property
    def unknown(self) -> bool:
        return bool(self.error)

    def describe(self) -> str:
        if self.detected:
            return f"Possible anti-bot challenge element present ({self.label})"
        if self.unknown:
            return "challenge verdict unknown"
        return "no challenge detected"


# Ordered: first match wins.
CHALLENGE_RULES: tuple[ChallengeRule, ...] = (
    ChallengeRule("challenge-element", ('[id*="challenge"]', '[class*="challenge"]')),
    ChallengeRule(
        "challenge-iframe",
        (
            'iframe[src*="challenge"]',
            'iframe[src*="turnstile"]',
            'iframe[src*="captcha"]',
            'iframe[src*="challenges.cloudflare.com"]',
        ),
    ),
    ChallengeRule("site-key", ("[data-sitekey]",)),
    ChallengeRule("captcha-form-field", ('input[name="cf_captcha_kind"]', 'input[name="cf_captcha_token"]')),
    ChallengeRule("canvas-probe", ('div:has(> canvas[aria-hidden="true"])',)),
)


async def detect_challenge(page: Page, rules: Sequence[ChallengeRule] = CHALLENGE_RULES) -> ChallengeVerdict:
    """Scan *page* with *rules* in order and return the first match.

    Errors from the page (closed target, destroyed context) propagate; the
    orchestrator records them as an unknown verdict.
    """
    for rule in rules:
        if await rule.matches(page):
            verdict = ChallengeVerdict(detected=True, label=rule.label, selector=rule.selector)
            logger.warning("Challenge detected: %s", verdict.describe())
            return verdict
    logger.debug("No challenge markers found")
    return ChallengeVerdict()

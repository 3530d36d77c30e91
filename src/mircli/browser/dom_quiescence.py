"""DOM mutation quiescence, measured inside the page.

A ``MutationObserver`` over the whole document records the time of the last
mutation; the script polls until the document has been quiet for ``quiet_ms``
or ``wall_ms`` has elapsed, and always disconnects the observer. Observing in
the page avoids repeatedly serializing the DOM from the host.

The execution context may be destroyed mid-wait (navigation away, page
close). That is treated as "settlement not confirmed, proceed anyway".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from mircli.browser.cancellation import SessionEndedSignal, WaitOutcome

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 100
# Host-side slack on top of the in-page wall budget before giving up on evaluate().
HOST_GRACE_MS = 1_000

_DOM_STABLE_JS = """
async ([quietMs, wallMs, pollMs]) => {
  const sleep = ms => new Promise(r => setTimeout(r, ms));
  const start = Date.now();
  let lastMutation = start;
  let mutations = 0;
  const observer = new MutationObserver(records => {
    lastMutation = Date.now();
    mutations += records.length;
  });
  observer.observe(document, { subtree: true, childList: true, attributes: true, characterData: true });
  try {
    while ((Date.now() - lastMutation) < quietMs && (Date.now() - start) < wallMs) {
      await sleep(pollMs);
    }
  } finally {
    observer.disconnect();
  }
  const now = Date.now();
  return {
    waitedMs: now - start,
    sinceLastMutationMs: now - lastMutation,
    mutations: mutations,
    reason: (now - lastMutation) >= quietMs ? 'quiet' : 'wall'
  };
}
"""


@dataclass
class DomSettleResult:
    """Outcome of a DOM quiescence wait.

    ``reason`` is ``quiet`` or ``wall`` when the in-page wait finished,
    ``session-ended`` / ``host-timeout`` when the race was lost, and ``error``
    when the execution context went away.
    """

    outcome: WaitOutcome
    reason: str
    waited_ms: int = 0
    mutations: int = 0

    @property
    def settled(self) -> bool:
        return self.reason == "quiet"


def dom_settle_budget(
    settle_wait_ms: int,
    navigation_timeout_ms: int,
    *,
    quiet_cap_ms: int = 1_500,
    wall_cap_ms: int = 3_000,
) -> tuple[int, int]:
    """Return ``(quiet_ms, wall_ms)`` capped so chatty pages cannot stall extraction."""
    quiet_ms = min(max(settle_wait_ms, 0) or quiet_cap_ms, quiet_cap_ms)
    wall_ms = min(max(navigation_timeout_ms, 1), wall_cap_ms)
    return quiet_ms, wall_ms


async def wait_for_dom_stable(
    page: Page,
    signal: SessionEndedSignal,
    *,
    quiet_ms: int = 1_500,
    wall_ms: int = 3_000,
) -> DomSettleResult:
    """Wait for the document to stop mutating, raced against *signal*."""
    try:
        race = await signal.race(
            page.evaluate(_DOM_STABLE_JS, [quiet_ms, wall_ms, POLL_INTERVAL_MS]),
            timeout=(wall_ms + HOST_GRACE_MS) / 1000,
        )
    except PlaywrightError as exc:
        logger.warning("dom-stable skipped: %s", exc)
        return DomSettleResult(WaitOutcome.COMPLETED, "error")

    if race.outcome is WaitOutcome.CANCELLED:
        result = DomSettleResult(race.outcome, "session-ended")
    elif race.outcome is WaitOutcome.TIMED_OUT:
        result = DomSettleResult(race.outcome, "host-timeout", waited_ms=wall_ms + HOST_GRACE_MS)
    else:
        payload: dict[str, Any] = race.value or {}
        result = DomSettleResult(
            race.outcome,
            str(payload.get("reason", "quiet")),
            waited_ms=int(payload.get("waitedMs", 0)),
            mutations=int(payload.get("mutations", 0)),
        )
    logger.info("dom-stable: %s after %dms (%d mutations)", result.reason, result.waited_ms, result.mutations)
    return result

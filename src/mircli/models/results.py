"""Result model for a fetch run.

``RunStatus`` answers the degraded-success question explicitly: a run that
persisted its final capture is ``complete``; one that fell back to the early
capture is ``degraded``. Both produced an artifact.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from mircli.browser.challenge import ChallengeVerdict
from mircli.models.states import SessionState


class RunStatus(str, Enum):
    """Outcome status for a fetch run."""

    COMPLETE = "complete"
    DEGRADED = "degraded"
    FAILED = "failed"

    @property
    def artifact_written(self) -> bool:
        return self is not RunStatus.FAILED


@dataclass
class RunResult:
    """Complete outcome of fetching a single URL."""

    url: str = ""
    output_path: str = ""
    status: RunStatus = RunStatus.FAILED
    snapshot_stage: str = ""
    bytes_written: int = 0
    challenge: ChallengeVerdict | None = None
    warnings: list[str] = field(default_factory=list)
    error: str = ""
    states: list[SessionState] = field(default_factory=list)
    timings_ms: dict[str, int] = field(default_factory=dict)
    session_end_reason: str = ""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status.artifact_written

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for JSON output."""
        return {
            "url": self.url,
            "output_path": self.output_path,
            "status": self.status.value,
            "snapshot_stage": self.snapshot_stage,
            "bytes_written": self.bytes_written,
            "challenge": (
                {
                    "detected": self.challenge.detected,
                    "label": self.challenge.label,
                    "error": self.challenge.error,
                }
                if self.challenge
                else None
            ),
            "warnings": self.warnings,
            "error": self.error,
            "states": [s.value for s in self.states],
            "timings_ms": self.timings_ms,
            "session_end_reason": self.session_end_reason,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)

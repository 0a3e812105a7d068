"""Shared enums and types used across the engine."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class ExecutionStatus(str, enum.Enum):
    """Outcome of one message executed by the backend."""

    SUCCESS = "success"
    REVERT = "revert"
    FAULT = "fault"


class CampaignState(str, enum.Enum):
    """Lifecycle of a fuzzing campaign."""

    COMPILING = "compiling"
    DEPLOYED = "deployed"
    RUNNING = "running"
    REPORTED = "reported"


class Verdict(str, enum.Enum):
    """How a campaign ended."""

    CRASH_DETECTED = "crash_detected"
    EXHAUSTED = "exhausted"


class CrashKind(str, enum.Enum):
    """Why an iteration was classified as a crash."""

    TARGET_FAULT = "target_fault"
    TARGET_REVERT = "target_revert"
    INVARIANT_FALSE = "invariant_false"
    INVARIANT_CHECK_FAILED = "invariant_check_failed"


class RevertPolicy(str, enum.Enum):
    """What a reverted target call means for the campaign."""

    CHECK_INVARIANT = "check_invariant"
    CRASH = "crash"


# ── Shared Schemas ───────────────────────────────────────────────────────────


class CampaignReport(BaseModel):
    """Final, reproducible outcome of a fuzzing campaign."""

    verdict: Verdict
    iterations: int = 0
    crash_kind: CrashKind | None = None
    function: str | None = None
    selector: str | None = None
    calldata: str | None = Field(default=None, description="0x-prefixed failing calldata")
    reason: str = ""
    target_result: dict[str, Any] | None = Field(
        default=None, description="Backend result of the failing target call",
    )
    seed: int | None = None
    duration_seconds: float = 0.0
    target_address: str | None = None
    invariant_checker_address: str | None = None

    @property
    def crashed(self) -> bool:
        return self.verdict is Verdict.CRASH_DETECTED

    def summary_lines(self) -> list[str]:
        """Human-readable report lines."""
        if not self.crashed:
            return [f"No crash found after {self.iterations} iterations."]
        lines = [
            f"Crash found after {self.iterations} iterations!",
            f"Crash kind: {self.crash_kind.value if self.crash_kind else 'unknown'}",
            f"Function: {self.function}",
            f"Crashing input: {self.calldata}",
        ]
        if self.reason:
            lines.append(f"Reason: {self.reason}")
        if self.target_result:
            lines.append(
                f"Target call: {self.target_result['status']} "
                f"(gas_used={self.target_result['gas_used']})"
            )
        if self.seed is not None:
            lines.append(f"Seed: {self.seed}")
        return lines

"""Result models for reconciliation runs."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ReconcileResult(BaseModel):
    """Counters for one tenant's reconciliation."""

    tenant: str
    as_of: datetime
    stale_ended: int = 0
    healed: int = 0
    paused: int = 0
    ended: int = 0
    inactive_marked: int = 0
    skipped_conflicts: int = 0
    rows_failed: int = 0
    issues_found: int = 0

    @property
    def rows_changed(self) -> int:
        return self.stale_ended + self.healed + self.paused + self.ended + self.inactive_marked


TenantStatus = Literal["succeeded", "failed", "skipped_busy"]


class TenantOutcome(BaseModel):
    """How one tenant fared within a sweep."""

    tenant: str
    status: TenantStatus
    result: ReconcileResult | None = None
    error: str | None = None


class SweepResult(BaseModel):
    """Summary of one scheduler tick across all tenants."""

    as_of: datetime
    tenants_seen: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped_busy: int = 0
    directory_error: str | None = None
    duration_seconds: float = 0.0
    outcomes: list[TenantOutcome] = Field(default_factory=list)

    def add(self, outcome: TenantOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == "succeeded":
            self.succeeded += 1
        elif outcome.status == "failed":
            self.failed += 1
        else:
            self.skipped_busy += 1

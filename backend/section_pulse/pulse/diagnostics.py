"""Read-only data-quality checks over persisted sections."""

import logging
from datetime import datetime, timedelta
from typing import Iterable

from section_pulse.config import PulseConfig
from section_pulse.schemas import OPEN_STATUSES, PulseIssue, PulseStatus, PulseView, SchemaRef
from section_pulse.storage.pulse_store import PulseStore

logger = logging.getLogger(__name__)


def find_issues(rows: Iterable[PulseView], as_of: datetime, config: PulseConfig) -> list[PulseIssue]:
    """Check each row against the section invariants as of a point in time."""
    today = as_of.date()
    pause_cutoff = as_of - timedelta(minutes=config.pause_after_minutes)
    end_cutoff = as_of - timedelta(minutes=config.end_after_minutes)
    issues: list[PulseIssue] = []

    for row in rows:
        def flag(code, detail: str) -> None:
            issues.append(
                PulseIssue(
                    pulse_id=row.id,
                    society_id=row.society_id,
                    pulse_date=row.pulse_date,
                    code=code,
                    detail=detail,
                )
            )

        status = row.pulse_status

        if row.pulse_date < today and status in OPEN_STATUSES:
            days = (today - row.pulse_date).days
            flag("stale_open", f"{days} day(s) old but still {status.value}")

        if status == PulseStatus.ENDED and row.section_end_time is None:
            flag("ended_without_end_time", "status is ended but section_end_time is NULL")
        if status != PulseStatus.ENDED and row.section_end_time is not None:
            flag("end_time_without_ended", f"section_end_time set while {status.value}")

        if status == PulseStatus.INACTIVE and row.inactive_days <= 0:
            flag("inactive_streak_mismatch", "inactive with inactive_days = 0")
        if status != PulseStatus.INACTIVE and row.inactive_days > 0:
            flag("inactive_streak_mismatch", f"{status.value} with inactive_days = {row.inactive_days}")

        if (
            row.first_collection_time is not None
            and row.last_collection_time is not None
            and row.first_collection_time > row.last_collection_time
        ):
            flag("first_after_last", "first_collection_time is after last_collection_time")

        if row.pulse_date == today and status == PulseStatus.ACTIVE and row.last_collection_time:
            idle = int((as_of - row.last_collection_time).total_seconds() // 60)
            if row.last_collection_time <= end_cutoff:
                flag("overdue_end", f"{idle} minutes since last collection but still active")
            elif row.last_collection_time <= pause_cutoff:
                flag("overdue_pause", f"{idle} minutes since last collection, should be paused")

        if row.last_checked is None and row.pulse_date < today:
            flag("never_checked", "last_checked is NULL; scheduler may not be running")

    return issues


class PulseDiagnostics:
    """Scans a tenant's recent sections and logs what it finds."""

    def __init__(self, store: PulseStore, config: PulseConfig):
        self._store = store
        self._config = config

    def diagnose(self, tenant: SchemaRef, as_of: datetime) -> list[PulseIssue]:
        since = as_of.date() - timedelta(days=self._config.diagnostics_lookback_days)
        rows = self._store.list_since(tenant, since)
        issues = find_issues(rows, as_of, self._config)

        for issue in issues:
            logger.warning(
                "[%s] data quality: pulse %d (society %d, %s) %s: %s",
                tenant,
                issue.pulse_id,
                issue.society_id,
                issue.pulse_date,
                issue.code,
                issue.detail,
            )
        return issues

"""Pulse Reconciler: time-based section transitions for one tenant."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from section_pulse.config import PulseConfig
from section_pulse.exceptions import PulseStoreError
from section_pulse.pulse.diagnostics import PulseDiagnostics
from section_pulse.pulse.models import ReconcileResult
from section_pulse.schemas import PulseView, SchemaRef
from section_pulse.storage.pulse_store import PulseStore
from section_pulse.tenants.societies import SocietyRegistry

logger = logging.getLogger(__name__)


class PulseReconciler:
    """
    Derives the transitions no single collection event can trigger.

    reconcile() depends only on as_of and the persisted rows, so running it
    again with no new collections changes nothing. It runs four passes in a
    fixed order:

    1. close sections left open on earlier days
    2. pause today's active sections idle for the pause threshold
    3. end today's open sections idle for the end threshold
    4. create inactive rows for active societies with no section today

    Each row change is one compare-and-set statement. A row that fails is
    logged and left for the next tick; a failure listing rows or societies
    aborts the tenant.
    """

    def __init__(
        self,
        store: PulseStore,
        societies: SocietyRegistry,
        config: PulseConfig,
        diagnostics: Optional[PulseDiagnostics] = None,
    ):
        self._store = store
        self._societies = societies
        self._config = config
        self._diagnostics = diagnostics
        self._section_timeout = timedelta(minutes=config.end_after_minutes)

    def reconcile(self, tenant: SchemaRef, as_of: datetime) -> ReconcileResult:
        self._store.require_table(tenant)
        result = ReconcileResult(tenant=tenant.key, as_of=as_of)

        if self._diagnostics is not None and self._config.diagnose_on_reconcile:
            result.issues_found = len(self._diagnostics.diagnose(tenant, as_of))

        self._close_stale_days(tenant, as_of, result)
        self._pause_idle(tenant, as_of, result)
        self._end_idle(tenant, as_of, result)
        self._mark_inactive(tenant, as_of, result)

        logger.info(
            "[%s] reconciled as of %s: %d stale ended, %d healed, %d paused, "
            "%d ended, %d inactive, %d conflicts, %d failed",
            tenant,
            as_of.isoformat(sep=" "),
            result.stale_ended,
            result.healed,
            result.paused,
            result.ended,
            result.inactive_marked,
            result.skipped_conflicts,
            result.rows_failed,
        )
        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _close_stale_days(self, tenant: SchemaRef, as_of: datetime, result: ReconcileResult) -> None:
        for row in self._store.find_stale_open(tenant, as_of.date()):
            if self._close(tenant, row, as_of, result):
                result.stale_ended += 1

        # ended rows that lost their end time are repaired by the same rule
        for row in self._store.find_ended_without_end_time(tenant):
            if self._close(tenant, row, as_of, result):
                result.healed += 1

    def _pause_idle(self, tenant: SchemaRef, as_of: datetime, result: ReconcileResult) -> None:
        today = as_of.date()
        pause_cutoff = as_of - timedelta(minutes=self._config.pause_after_minutes)
        end_cutoff = as_of - self._section_timeout

        for row in self._store.find_pausable(tenant, today, pause_cutoff, end_cutoff):
            try:
                changed = self._store.pause_section(
                    tenant, row, today, pause_cutoff, end_cutoff, now=as_of
                )
            except PulseStoreError as e:
                self._row_failed(tenant, row, "pause", e, result)
                continue
            if changed:
                result.paused += 1
            else:
                result.skipped_conflicts += 1

    def _end_idle(self, tenant: SchemaRef, as_of: datetime, result: ReconcileResult) -> None:
        end_cutoff = as_of - self._section_timeout
        for row in self._store.find_endable(tenant, as_of.date(), end_cutoff):
            if self._close(tenant, row, as_of, result):
                result.ended += 1

    def _mark_inactive(self, tenant: SchemaRef, as_of: datetime, result: ReconcileResult) -> None:
        today = as_of.date()
        yesterday = today - timedelta(days=1)

        active = self._societies.list_active_societies(tenant)
        present = self._store.society_ids_with_pulse(tenant, today)

        for society_id in active:
            if society_id in present:
                continue
            try:
                previous = self._store.inactive_days_on(tenant, society_id, yesterday)
                streak = 1 if previous is None else previous + 1
                created = self._store.mark_inactive(tenant, society_id, today, streak, now=as_of)
            except PulseStoreError as e:
                logger.warning(
                    "[%s] failed to mark society %d inactive: %s", tenant, society_id, e
                )
                result.rows_failed += 1
                continue

            if created:
                result.inactive_marked += 1
                logger.debug("[%s] society %d inactive for %d day(s)", tenant, society_id, streak)
            else:
                result.skipped_conflicts += 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _close(self, tenant: SchemaRef, row: PulseView, as_of: datetime, result: ReconcileResult) -> bool:
        """End a row with end time = last collection + timeout (NULL without one)."""
        end_time = None
        if row.last_collection_time is not None:
            end_time = row.last_collection_time + self._section_timeout
        try:
            changed = self._store.close_section(tenant, row, end_time, now=as_of)
        except PulseStoreError as e:
            self._row_failed(tenant, row, "close", e, result)
            return False
        if not changed:
            result.skipped_conflicts += 1
        return changed

    @staticmethod
    def _row_failed(
        tenant: SchemaRef,
        row: PulseView,
        action: str,
        error: Exception,
        result: ReconcileResult,
    ) -> None:
        logger.warning(
            "[%s] could not %s pulse %d (society %d, %s): %s",
            tenant,
            action,
            row.id,
            row.society_id,
            row.pulse_date,
            error,
        )
        result.rows_failed += 1

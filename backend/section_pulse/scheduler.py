"""Reconciliation sweep and its APScheduler loop."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import NoReturn, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from section_pulse.clock import Clock
from section_pulse.config import SchedulerConfig
from section_pulse.pulse.models import SweepResult, TenantOutcome
from section_pulse.pulse.reconciler import PulseReconciler
from section_pulse.schemas import SchemaRef
from section_pulse.tenants.directory import TenantDirectory

logger = logging.getLogger(__name__)


class TenantSweep:
    """
    One reconciliation pass over every active tenant.

    The tenant list is fetched fresh on each run. Tenants are reconciled
    on a bounded thread pool; a tenant whose previous reconciliation is
    still running is skipped instead of being run twice. Nothing carries
    over between runs.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        reconciler: PulseReconciler,
        clock: Clock,
        max_workers: int = 4,
    ):
        self._directory = directory
        self._reconciler = reconciler
        self._clock = clock
        self._max_workers = max_workers
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def run_once(self, as_of: Optional[datetime] = None) -> SweepResult:
        as_of = as_of or self._clock.now()
        started = time.monotonic()
        sweep = SweepResult(as_of=as_of)

        try:
            tenants = self._directory.list_active_tenant_schemas()
        except Exception as e:
            logger.error(f"Tenant discovery failed, skipping tick: {e}", exc_info=True)
            sweep.directory_error = str(e)
            sweep.duration_seconds = time.monotonic() - started
            return sweep

        sweep.tenants_seen = len(tenants)
        if not tenants:
            logger.info("No active tenant schemas to reconcile")
            sweep.duration_seconds = time.monotonic() - started
            return sweep

        workers = min(self._max_workers, len(tenants))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pulse-reconcile") as pool:
            futures = [pool.submit(self._reconcile_tenant, tenant, as_of) for tenant in tenants]
            for future in as_completed(futures):
                sweep.add(future.result())

        sweep.outcomes.sort(key=lambda o: o.tenant)
        sweep.duration_seconds = time.monotonic() - started
        logger.info(
            f"Sweep as of {as_of.isoformat(sep=' ')}: {sweep.succeeded} ok, "
            f"{sweep.failed} failed, {sweep.skipped_busy} busy "
            f"({sweep.tenants_seen} tenants, {sweep.duration_seconds:.2f}s)"
        )
        return sweep

    def _lock_for(self, tenant: SchemaRef) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(tenant.key)
            if lock is None:
                lock = threading.Lock()
                self._locks[tenant.key] = lock
            return lock

    def _reconcile_tenant(self, tenant: SchemaRef, as_of: datetime) -> TenantOutcome:
        lock = self._lock_for(tenant)
        if not lock.acquire(blocking=False):
            logger.warning(f"[{tenant}] previous reconciliation still running, skipping")
            return TenantOutcome(tenant=tenant.key, status="skipped_busy")

        try:
            result = self._reconciler.reconcile(tenant, as_of)
            return TenantOutcome(tenant=tenant.key, status="succeeded", result=result)
        except Exception as e:
            logger.error(f"[{tenant}] reconciliation failed: {e}", exc_info=True)
            return TenantOutcome(tenant=tenant.key, status="failed", error=str(e))
        finally:
            lock.release()


def pulse_sweep_job(sweep: TenantSweep) -> None:
    """Scheduler job wrapper for one sweep."""
    try:
        result = sweep.run_once()
        if result.failed:
            failed = ", ".join(o.tenant for o in result.outcomes if o.status == "failed")
            logger.warning(f"Tenants failed this tick: {failed}")
    except Exception as e:
        logger.error(f"Pulse sweep failed: {e}", exc_info=True)


def build_scheduler(sweep: TenantSweep, config: SchedulerConfig) -> BlockingScheduler:
    """Register the sweep job on a blocking scheduler without starting it."""
    scheduler = BlockingScheduler()

    # an explicit next_run_time=None would add the job paused
    extra = {"next_run_time": datetime.now()} if config.run_on_start else {}
    scheduler.add_job(
        pulse_sweep_job,
        IntervalTrigger(minutes=config.reconcile_interval_minutes),
        args=[sweep],
        id="pulse-reconcile",
        name="Pulse: Reconcile all tenants",
        max_instances=1,
        coalesce=True,
        **extra,
    )
    logger.info(
        f"Registered job: Pulse Reconcile (every {config.reconcile_interval_minutes} min)"
    )
    return scheduler


def start_scheduler(sweep: TenantSweep, config: SchedulerConfig) -> NoReturn:
    """Start the APScheduler with the reconciliation job."""
    scheduler = build_scheduler(sweep, config)

    try:
        logger.info("✓ Scheduler starting...")
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        logger.info("✓ Scheduler stopped cleanly")

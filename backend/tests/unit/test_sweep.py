"""
Unit Tests: scheduler sweep

Test cases:
- Every active tenant is reconciled once per tick with the same as_of
- One tenant failing does not stop the others
- A tenant still running from the previous tick is skipped
- Directory failure skips the tick instead of raising
- Scheduler job registration
"""

import threading
from datetime import datetime

from section_pulse.clock import FixedClock
from section_pulse.config import SchedulerConfig
from section_pulse.pulse.models import ReconcileResult
from section_pulse.scheduler import TenantSweep, build_scheduler, pulse_sweep_job
from section_pulse.schemas import SchemaRef
from section_pulse.tenants import StaticTenantDirectory, TenantDirectory

NOW = datetime(2024, 3, 10, 9, 0)
TENANTS = [SchemaRef(key=k, schema_name=f"tenant_{k}") for k in ("a", "b", "c")]


class RecordingReconciler:
    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, datetime]] = []
        self._guard = threading.Lock()

    def reconcile(self, tenant: SchemaRef, as_of: datetime) -> ReconcileResult:
        with self._guard:
            self.calls.append((tenant.key, as_of))
        if tenant.key in self.fail_on:
            raise RuntimeError(f"lock wait timeout in {tenant.schema_name}")
        return ReconcileResult(tenant=tenant.key, as_of=as_of, paused=1)


class BrokenDirectory(TenantDirectory):
    def list_active_tenant_schemas(self) -> list[SchemaRef]:
        raise ConnectionError("admin database unreachable")


def test_each_tenant_reconciled_once_with_shared_as_of() -> None:
    reconciler = RecordingReconciler()
    sweep = TenantSweep(StaticTenantDirectory(TENANTS), reconciler, FixedClock(NOW), max_workers=2)

    result = sweep.run_once()

    assert sorted(reconciler.calls) == [("a", NOW), ("b", NOW), ("c", NOW)]
    assert result.tenants_seen == 3
    assert result.succeeded == 3
    assert [o.tenant for o in result.outcomes] == ["a", "b", "c"]


def test_explicit_as_of_overrides_clock() -> None:
    reconciler = RecordingReconciler()
    sweep = TenantSweep(StaticTenantDirectory(TENANTS[:1]), reconciler, FixedClock(NOW))
    replay = datetime(2024, 3, 1, 23, 59)

    result = sweep.run_once(replay)

    assert reconciler.calls == [("a", replay)]
    assert result.as_of == replay


def test_failing_tenant_is_isolated() -> None:
    reconciler = RecordingReconciler(fail_on={"b"})
    sweep = TenantSweep(StaticTenantDirectory(TENANTS), reconciler, FixedClock(NOW))

    result = sweep.run_once()

    assert result.succeeded == 2
    assert result.failed == 1
    failed = next(o for o in result.outcomes if o.tenant == "b")
    assert failed.status == "failed"
    assert "lock wait timeout" in failed.error
    assert failed.result is None


def test_busy_tenant_is_skipped_not_queued() -> None:
    started = threading.Event()
    release = threading.Event()

    class SlowReconciler(RecordingReconciler):
        def reconcile(self, tenant, as_of):
            if tenant.key == "a":
                started.set()
                release.wait(timeout=5)
            return super().reconcile(tenant, as_of)

    reconciler = SlowReconciler()
    sweep = TenantSweep(StaticTenantDirectory(TENANTS[:1]), reconciler, FixedClock(NOW))

    first: list = []
    worker = threading.Thread(target=lambda: first.append(sweep.run_once()))
    worker.start()
    assert started.wait(timeout=5)

    overlapping = sweep.run_once()
    release.set()
    worker.join(timeout=5)

    assert overlapping.skipped_busy == 1
    assert overlapping.outcomes[0].status == "skipped_busy"
    assert first[0].succeeded == 1
    assert reconciler.calls == [("a", NOW)]


def test_lock_is_released_after_failure() -> None:
    reconciler = RecordingReconciler(fail_on={"a"})
    sweep = TenantSweep(StaticTenantDirectory(TENANTS[:1]), reconciler, FixedClock(NOW))

    sweep.run_once()
    second = sweep.run_once()

    assert second.failed == 1
    assert second.skipped_busy == 0


def test_directory_failure_skips_tick() -> None:
    reconciler = RecordingReconciler()
    sweep = TenantSweep(BrokenDirectory(), reconciler, FixedClock(NOW))

    result = sweep.run_once()

    assert "unreachable" in result.directory_error
    assert result.tenants_seen == 0
    assert reconciler.calls == []


def test_empty_directory_is_a_quiet_tick() -> None:
    sweep = TenantSweep(StaticTenantDirectory([]), RecordingReconciler(), FixedClock(NOW))

    result = sweep.run_once()

    assert result.tenants_seen == 0
    assert result.outcomes == []


def test_sweep_job_never_raises() -> None:
    class ExplodingSweep:
        def run_once(self):
            raise RuntimeError("boom")

    pulse_sweep_job(ExplodingSweep())


def test_build_scheduler_registers_single_instance_job() -> None:
    sweep = TenantSweep(StaticTenantDirectory(TENANTS), RecordingReconciler(), FixedClock(NOW))
    scheduler = build_scheduler(
        sweep, SchedulerConfig(reconcile_interval_minutes=2, run_on_start=False)
    )

    jobs = scheduler.get_jobs()
    assert len(jobs) == 1
    job = jobs[0]
    assert job.id == "pulse-reconcile"
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 120
    assert job.args == (sweep,)

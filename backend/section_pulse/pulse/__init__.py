"""Section pulse state machine: writer, reconciler and diagnostics."""

from section_pulse.pulse.diagnostics import PulseDiagnostics, find_issues
from section_pulse.pulse.feed import CollectionFeed
from section_pulse.pulse.models import ReconcileResult, SweepResult, TenantOutcome
from section_pulse.pulse.reconciler import PulseReconciler
from section_pulse.pulse.writer import PulseWriter

__all__ = [
    "CollectionFeed",
    "PulseDiagnostics",
    "PulseReconciler",
    "PulseWriter",
    "ReconcileResult",
    "SweepResult",
    "TenantOutcome",
    "find_issues",
]

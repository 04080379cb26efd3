"""Pulse Writer: event-triggered section updates."""

import logging
from datetime import datetime

from section_pulse.clock import Clock, resolve_timezone, to_local
from section_pulse.schemas import PulseView, SchemaRef
from section_pulse.storage.pulse_store import PulseStore

logger = logging.getLogger(__name__)


class PulseWriter:
    """
    Applies a collection event to its society's section for that day.

    Called inline right after a collection row is persisted. Storage errors
    propagate as PulseStoreError so the caller can retry the request; the
    reconciler repairs time-based state on its own if the writer never runs.
    """

    def __init__(self, store: PulseStore, clock: Clock, tz_name: str = "UTC"):
        self._store = store
        self._clock = clock
        self._tz = resolve_timezone(tz_name)

    def record_collection(
        self,
        tenant: SchemaRef,
        society_id: int,
        event_time: datetime,
    ) -> PulseView:
        """Upsert the section for date(event_time) and revive it to active."""
        local_time = to_local(event_time, self._tz)
        pulse = self._store.upsert_collection(
            tenant,
            society_id,
            local_time,
            now=self._clock.now(),
        )
        logger.debug(
            "[%s] collection for society %d at %s -> %s (total=%d)",
            tenant,
            society_id,
            local_time.isoformat(sep=" "),
            pulse.pulse_status.value,
            pulse.total_collections,
        )
        return pulse

"""Collection feed adapter for the ingestion path."""

from datetime import date, datetime, time

from section_pulse.pulse.writer import PulseWriter
from section_pulse.schemas import PulseView, SchemaRef


class CollectionFeed:
    """
    Hook for code that inserts milk_collections rows.

    milk_collections keeps collection_date and collection_time in separate
    columns; this joins them before handing the event to the writer.
    """

    def __init__(self, writer: PulseWriter):
        self._writer = writer

    def on_collection_inserted(
        self,
        tenant: SchemaRef,
        society_id: int,
        collection_date: date,
        collection_time: time,
    ) -> PulseView:
        event_time = datetime.combine(collection_date, collection_time)
        return self._writer.record_collection(tenant, society_id, event_time)

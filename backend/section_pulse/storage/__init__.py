"""
Persistence for section pulses.

Exports:
- Database: engine and tenant-bound sessions
- PulseStore: atomic upserts, compare-and-set transitions, read surface
- ORM models: SectionPulse, Society, AdminSchema
"""

from section_pulse.storage.base import Base, TimestampMixin
from section_pulse.storage.database import Database, attach_sqlite_schemas, create_db_engine
from section_pulse.storage.models import AdminSchema, SectionPulse, Society
from section_pulse.storage.pulse_store import PulseStore

__all__ = [
    # Engine / sessions
    "Database",
    "attach_sqlite_schemas",
    "create_db_engine",
    # Models
    "AdminSchema",
    "Base",
    "SectionPulse",
    "Society",
    "TimestampMixin",
    # Store
    "PulseStore",
]

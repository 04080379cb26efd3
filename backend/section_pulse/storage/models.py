"""Database models.

SectionPulse and Society live in every tenant schema and are declared without
a schema; the tenant is applied at execution time via schema_translate_map.
AdminSchema lives in the shared schema and is always queried untranslated.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from section_pulse.schemas import PulseStatus
from section_pulse.storage.base import Base, TimestampMixin


class SectionPulse(TimestampMixin, Base):
    """One collection section: a society's state for one calendar day."""

    __tablename__ = "section_pulse"

    id = Column(Integer, primary_key=True, autoincrement=True)
    society_id = Column(Integer, nullable=False, index=True)
    pulse_date = Column(Date, nullable=False, comment="Tenant-local day")

    first_collection_time = Column(DateTime, nullable=True)
    last_collection_time = Column(DateTime, nullable=True)
    section_end_time = Column(DateTime, nullable=True, comment="Set iff pulse_status = ended")

    pulse_status = Column(
        Enum(
            PulseStatus,
            name="pulse_status",
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=PulseStatus.ACTIVE,
    )
    total_collections = Column(Integer, nullable=False, default=0)
    inactive_days = Column(Integer, nullable=False, default=0)
    last_checked = Column(DateTime, nullable=True, comment="Last reconciler visit")

    __table_args__ = (
        UniqueConstraint("society_id", "pulse_date", name="uq_section_pulse_society_date"),
        Index("ix_section_pulse_status_date", "pulse_status", "pulse_date"),
        CheckConstraint("total_collections >= 0", name="ck_section_pulse_total_non_negative"),
        CheckConstraint("inactive_days >= 0", name="ck_section_pulse_inactive_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<SectionPulse id={self.id} society={self.society_id} "
            f"date={self.pulse_date} status={self.pulse_status}>"
        )


class Society(Base):
    """Society registry row (owned by the dashboard, read here)."""

    __tablename__ = "societies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    society_id = Column(String(50), nullable=False, comment="Society code, e.g. S-101")
    status = Column(String(20), nullable=False, default="active")


class AdminSchema(TimestampMixin, Base):
    """Registry of tenant schemas in the shared schema."""

    __tablename__ = "admin_schemas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    schema_key = Column(String(50), nullable=False, unique=True)
    schema_name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")

"""Pydantic schemas shared by the store, the pulse services and the API."""

from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class PulseStatus(str, Enum):
    """Section status for a society's day."""

    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"
    INACTIVE = "inactive"


OPEN_STATUSES = (PulseStatus.ACTIVE, PulseStatus.PAUSED)


class SchemaRef(BaseModel):
    """Opaque handle to one tenant's isolated schema.

    Only the store reads schema_name; everything else passes the ref through.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    schema_name: str

    def __str__(self) -> str:
        return self.key


class PulseView(BaseSchema):
    """Read contract for one society/day section."""

    id: int
    society_id: int
    pulse_date: date
    pulse_status: PulseStatus
    first_collection_time: Optional[datetime] = None
    last_collection_time: Optional[datetime] = None
    section_end_time: Optional[datetime] = None
    total_collections: int = 0
    inactive_days: int = 0
    last_checked: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CollectionEvent(BaseModel):
    """Collection insert notification from the ingestion path."""

    society_id: int = Field(..., gt=0)
    collection_time: datetime


IssueCode = Literal[
    "stale_open",
    "ended_without_end_time",
    "end_time_without_ended",
    "inactive_streak_mismatch",
    "first_after_last",
    "overdue_end",
    "overdue_pause",
    "never_checked",
]


class PulseIssue(BaseModel):
    """A data-quality finding on a persisted section row."""

    pulse_id: int
    society_id: int
    pulse_date: date
    code: IssueCode
    detail: str

"""
PulseStore

Owns every read and write of the section_pulse table in a tenant schema.

Each mutating method is a single atomic statement in its own transaction:
- upsert_collection: insert-or-update keyed on (society_id, pulse_date)
- close_section / pause_section: conditional UPDATE that re-checks the state
  the caller observed, so a concurrent collection turns it into a no-op
- mark_inactive: insert-or-update that never overwrites a non-inactive row

Read methods return PulseView snapshots, never live ORM objects.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Optional

from sqlalchemy import and_, case, func, inspect, or_, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from section_pulse.exceptions import PulseStoreError, TenantNotFoundError
from section_pulse.schemas import OPEN_STATUSES, PulseStatus, PulseView, SchemaRef
from section_pulse.storage.database import Database
from section_pulse.storage.models import SectionPulse

logger = logging.getLogger(__name__)

_TABLE = SectionPulse.__table__
_CONFLICT_KEY = [_TABLE.c.society_id, _TABLE.c.pulse_date]


def _matches(column, value) -> ColumnElement:
    """NULL-safe equality against a previously observed value."""
    if value is None:
        return column.is_(None)
    return column == value


class PulseStore:
    """Section pulse persistence for all tenants on one database server."""

    def __init__(self, database: Database):
        self._db = database

    # ------------------------------------------------------------------
    # Schema provisioning
    # ------------------------------------------------------------------

    def has_table(self, tenant: SchemaRef) -> bool:
        """Check whether the tenant schema exists and holds section_pulse."""
        try:
            return inspect(self._db.engine).has_table(
                _TABLE.name, schema=tenant.schema_name
            )
        except (NoSuchTableError, SQLAlchemyError) as e:
            logger.debug(f"[{tenant}] schema lookup failed: {e}")
            return False

    def ensure_schema(self, tenant: SchemaRef) -> bool:
        """Create section_pulse in the tenant schema if missing. Returns True if created."""
        if self.has_table(tenant):
            return False
        try:
            with self._db.bind_for(tenant.schema_name).begin() as conn:
                _TABLE.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            raise PulseStoreError(
                f"Failed to create section_pulse in {tenant.schema_name}: {e}",
                tenant=tenant.key,
            ) from e
        logger.info(f"[{tenant}] created section_pulse table")
        return True

    def require_table(self, tenant: SchemaRef) -> None:
        if not self.has_table(tenant):
            raise TenantNotFoundError(
                f"Tenant {tenant.key} has no section_pulse table", tenant=tenant.key
            )

    # ------------------------------------------------------------------
    # Writer path
    # ------------------------------------------------------------------

    def upsert_collection(
        self,
        tenant: SchemaRef,
        society_id: int,
        event_time: datetime,
        now: datetime,
    ) -> PulseView:
        """
        Apply one collection event atomically.

        New row: active, first = last = event_time, one collection.
        Existing row: last only moves forward, first only moves back, count
        +1, status forced to active, end time and inactive streak cleared.
        """
        values = {
            "society_id": society_id,
            "pulse_date": event_time.date(),
            "first_collection_time": event_time,
            "last_collection_time": event_time,
            "section_end_time": None,
            "pulse_status": PulseStatus.ACTIVE,
            "total_collections": 1,
            "inactive_days": 0,
            "created_at": now,
            "updated_at": now,
        }

        def on_conflict(new) -> dict[str, Any]:
            first = _TABLE.c.first_collection_time
            last = _TABLE.c.last_collection_time
            return {
                "first_collection_time": case(
                    (or_(first.is_(None), new.first_collection_time < first), new.first_collection_time),
                    else_=first,
                ),
                "last_collection_time": case(
                    (or_(last.is_(None), new.last_collection_time > last), new.last_collection_time),
                    else_=last,
                ),
                "total_collections": _TABLE.c.total_collections + 1,
                "section_end_time": None,
                "inactive_days": 0,
                "updated_at": now,
                "pulse_status": PulseStatus.ACTIVE,
            }

        try:
            with self._db.session(tenant.schema_name) as db:
                self._upsert(db, values, on_conflict)
                row = db.execute(
                    select(SectionPulse).where(
                        SectionPulse.society_id == society_id,
                        SectionPulse.pulse_date == event_time.date(),
                    )
                ).scalar_one()
                return PulseView.model_validate(row)
        except SQLAlchemyError as e:
            raise PulseStoreError(
                f"Failed to record collection for society {society_id}: {e}",
                tenant=tenant.key,
            ) from e

    # ------------------------------------------------------------------
    # Reconciler reads
    # ------------------------------------------------------------------

    def find_stale_open(self, tenant: SchemaRef, today: date) -> list[PulseView]:
        """Open sections (active/paused, no end time) from days before today."""
        return self._select(
            tenant,
            SectionPulse.pulse_status.in_(OPEN_STATUSES),
            SectionPulse.section_end_time.is_(None),
            SectionPulse.pulse_date < today,
        )

    def find_ended_without_end_time(self, tenant: SchemaRef) -> list[PulseView]:
        """Ended rows missing section_end_time that still have a timestamp to derive it from."""
        return self._select(
            tenant,
            SectionPulse.pulse_status == PulseStatus.ENDED,
            SectionPulse.section_end_time.is_(None),
            SectionPulse.last_collection_time.is_not(None),
        )

    def find_pausable(
        self,
        tenant: SchemaRef,
        today: date,
        pause_cutoff: datetime,
        end_cutoff: datetime,
    ) -> list[PulseView]:
        """Today's active rows whose last collection is in (end_cutoff, pause_cutoff]."""
        return self._select(
            tenant,
            *self._pausable_clauses(today, pause_cutoff, end_cutoff),
        )

    def find_endable(self, tenant: SchemaRef, today: date, end_cutoff: datetime) -> list[PulseView]:
        """Today's open rows whose last collection is at or before end_cutoff."""
        return self._select(
            tenant,
            SectionPulse.pulse_status.in_(OPEN_STATUSES),
            SectionPulse.pulse_date == today,
            SectionPulse.section_end_time.is_(None),
            SectionPulse.last_collection_time.is_not(None),
            SectionPulse.last_collection_time <= end_cutoff,
        )

    def society_ids_with_pulse(self, tenant: SchemaRef, day: date) -> set[int]:
        try:
            with self._db.session(tenant.schema_name) as db:
                result = db.execute(
                    select(SectionPulse.society_id).where(SectionPulse.pulse_date == day)
                )
                return {r[0] for r in result.all()}
        except SQLAlchemyError as e:
            raise PulseStoreError(f"Failed to list pulses for {day}: {e}", tenant=tenant.key) from e

    def inactive_days_on(self, tenant: SchemaRef, society_id: int, day: date) -> Optional[int]:
        """inactive_days of the society's row on day, or None if there is no row."""
        try:
            with self._db.session(tenant.schema_name) as db:
                result = db.execute(
                    select(SectionPulse.inactive_days).where(
                        SectionPulse.society_id == society_id,
                        SectionPulse.pulse_date == day,
                    )
                ).first()
        except SQLAlchemyError as e:
            raise PulseStoreError(
                f"Failed to read streak for society {society_id} on {day}: {e}",
                tenant=tenant.key,
            ) from e
        if result is None:
            return None
        return result[0] or 0

    # ------------------------------------------------------------------
    # Reconciler compare-and-set writes
    # ------------------------------------------------------------------

    def close_section(
        self,
        tenant: SchemaRef,
        observed: PulseView,
        section_end_time: Optional[datetime],
        now: datetime,
    ) -> bool:
        """
        Move an observed row to ended.

        Applies only if status, last_collection_time and section_end_time
        are still what the caller read. Returns False when a concurrent
        write got there first.
        """
        stmt = (
            update(SectionPulse)
            .where(
                SectionPulse.id == observed.id,
                SectionPulse.pulse_status == observed.pulse_status,
                _matches(SectionPulse.last_collection_time, observed.last_collection_time),
                _matches(SectionPulse.section_end_time, observed.section_end_time),
            )
            .values(
                pulse_status=PulseStatus.ENDED,
                section_end_time=section_end_time,
                last_checked=now,
                updated_at=now,
            )
        )
        return self._execute_cas(tenant, stmt, observed)

    def pause_section(
        self,
        tenant: SchemaRef,
        observed: PulseView,
        today: date,
        pause_cutoff: datetime,
        end_cutoff: datetime,
        now: datetime,
    ) -> bool:
        """Move an active row to paused if it is still inside the pause window."""
        stmt = (
            update(SectionPulse)
            .where(
                SectionPulse.id == observed.id,
                *self._pausable_clauses(today, pause_cutoff, end_cutoff),
            )
            .values(
                pulse_status=PulseStatus.PAUSED,
                last_checked=now,
                updated_at=now,
            )
        )
        return self._execute_cas(tenant, stmt, observed)

    def mark_inactive(
        self,
        tenant: SchemaRef,
        society_id: int,
        day: date,
        inactive_days: int,
        now: datetime,
    ) -> bool:
        """
        Create (or refresh) an inactive row for a society with no collections.

        A row a collection created in the meantime is left untouched.
        """
        values = {
            "society_id": society_id,
            "pulse_date": day,
            "first_collection_time": None,
            "last_collection_time": None,
            "section_end_time": None,
            "pulse_status": PulseStatus.INACTIVE,
            "total_collections": 0,
            "inactive_days": inactive_days,
            "last_checked": now,
            "created_at": now,
            "updated_at": now,
        }

        def on_conflict(new) -> dict[str, Any]:
            return {
                "inactive_days": inactive_days,
                "last_checked": now,
                "updated_at": now,
            }

        try:
            with self._db.session(tenant.schema_name) as db:
                self._upsert(
                    db,
                    values,
                    on_conflict,
                    where=SectionPulse.pulse_status == PulseStatus.INACTIVE,
                )
                # rowcount is unreliable here: MySQL reports found rows for a no-op update
                status = db.execute(
                    select(SectionPulse.pulse_status).where(
                        SectionPulse.society_id == society_id,
                        SectionPulse.pulse_date == day,
                    )
                ).scalar_one()
                return status == PulseStatus.INACTIVE
        except SQLAlchemyError as e:
            raise PulseStoreError(
                f"Failed to mark society {society_id} inactive on {day}: {e}",
                tenant=tenant.key,
            ) from e

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def get_pulse(self, tenant: SchemaRef, society_id: int, day: date) -> Optional[PulseView]:
        rows = self._select(
            tenant,
            SectionPulse.society_id == society_id,
            SectionPulse.pulse_date == day,
        )
        return rows[0] if rows else None

    def recent_for_society(self, tenant: SchemaRef, society_id: int, limit: int = 30) -> list[PulseView]:
        """Newest-first section history for one society."""
        return self._select(
            tenant,
            SectionPulse.society_id == society_id,
            order_by=(SectionPulse.pulse_date.desc(),),
            limit=limit,
        )

    def list_for_day(self, tenant: SchemaRef, day: date) -> list[PulseView]:
        return self._select(tenant, SectionPulse.pulse_date == day)

    def list_since(self, tenant: SchemaRef, since: date) -> list[PulseView]:
        return self._select(
            tenant,
            SectionPulse.pulse_date >= since,
            order_by=(SectionPulse.pulse_date.desc(), SectionPulse.society_id),
        )

    def count_rows(self, tenant: SchemaRef) -> int:
        try:
            with self._db.session(tenant.schema_name) as db:
                return db.execute(select(func.count()).select_from(SectionPulse)).scalar_one()
        except SQLAlchemyError as e:
            raise PulseStoreError(f"Failed to count pulses: {e}", tenant=tenant.key) from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _pausable_clauses(today: date, pause_cutoff: datetime, end_cutoff: datetime) -> tuple:
        return (
            SectionPulse.pulse_status == PulseStatus.ACTIVE,
            SectionPulse.pulse_date == today,
            SectionPulse.last_collection_time.is_not(None),
            and_(
                SectionPulse.last_collection_time > end_cutoff,
                SectionPulse.last_collection_time <= pause_cutoff,
            ),
        )

    def _select(self, tenant: SchemaRef, *criteria, order_by=None, limit: Optional[int] = None) -> list[PulseView]:
        query = select(SectionPulse).where(*criteria)
        if order_by is None:
            order_by = (SectionPulse.pulse_date, SectionPulse.society_id)
        query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        try:
            with self._db.session(tenant.schema_name) as db:
                rows = db.execute(query).scalars().all()
                return [PulseView.model_validate(r) for r in rows]
        except SQLAlchemyError as e:
            raise PulseStoreError(f"Failed to query section_pulse: {e}", tenant=tenant.key) from e

    def _execute_cas(self, tenant: SchemaRef, stmt, observed: PulseView) -> bool:
        try:
            with self._db.session(tenant.schema_name) as db:
                result = db.execute(stmt)
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise PulseStoreError(
                f"Failed to update pulse {observed.id} (society {observed.society_id}): {e}",
                tenant=tenant.key,
            ) from e

    def _upsert(
        self,
        db: Session,
        values: dict[str, Any],
        on_conflict: Callable[[Any], dict[str, Any]],
        where: Optional[ColumnElement] = None,
    ):
        """
        INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE keyed on (society_id, pulse_date).

        on_conflict receives the dialect's proposed-row namespace (excluded /
        inserted) and returns the column assignments for an existing row.
        On MySQL, where is folded into each assignment since the statement
        has no WHERE clause; assignments run left to right there, so
        pulse_status is always assigned last.
        """
        dialect = self._db.dialect_name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(_TABLE).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=_CONFLICT_KEY,
                set_=on_conflict(stmt.excluded),
                where=where,
            )
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(_TABLE).values(**values)
            assignments = on_conflict(stmt.inserted)
            if where is not None:
                assignments = {
                    name: case((where, value), else_=_TABLE.c[name])
                    for name, value in assignments.items()
                }
            ordered = sorted(assignments.items(), key=lambda item: item[0] == "pulse_status")
            stmt = stmt.on_duplicate_key_update(ordered)
        else:
            raise PulseStoreError(f"No atomic upsert available for dialect {dialect!r}")

        return db.execute(stmt)

"""Society registry boundary."""

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from section_pulse.exceptions import PulseStoreError
from section_pulse.schemas import SchemaRef
from section_pulse.storage.database import Database
from section_pulse.storage.models import Society


class SocietyRegistry(ABC):
    @abstractmethod
    def list_active_societies(self, tenant: SchemaRef) -> list[int]:
        """Ids of societies currently flagged active in the tenant."""


class SqlSocietyRegistry(SocietyRegistry):
    """Reads the tenant's societies table."""

    def __init__(self, database: Database):
        self._db = database

    def list_active_societies(self, tenant: SchemaRef) -> list[int]:
        try:
            with self._db.session(tenant.schema_name) as db:
                result = db.execute(
                    select(Society.id).where(Society.status == "active").order_by(Society.id)
                )
                return [r[0] for r in result.all()]
        except SQLAlchemyError as e:
            raise PulseStoreError(f"Failed to list active societies: {e}", tenant=tenant.key) from e

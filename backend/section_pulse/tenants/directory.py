"""Tenant directory: which schemas the sweep should visit."""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from section_pulse.config import StaticTenant
from section_pulse.exceptions import PulseStoreError, TenantNotFoundError
from section_pulse.schemas import SchemaRef
from section_pulse.storage.database import Database
from section_pulse.storage.models import AdminSchema

logger = logging.getLogger(__name__)


class TenantDirectory(ABC):
    """Enumerates active tenant schemas as opaque SchemaRef handles."""

    @abstractmethod
    def list_active_tenant_schemas(self) -> list[SchemaRef]:
        """Return every tenant that should be reconciled right now."""

    def resolve(self, key: str) -> SchemaRef:
        """Look up one active tenant by its directory key."""
        for tenant in self.list_active_tenant_schemas():
            if tenant.key == key:
                return tenant
        raise TenantNotFoundError(f"Unknown or inactive tenant: {key}", tenant=key)


class StaticTenantDirectory(TenantDirectory):
    """Fixed tenant list, from configuration or tests."""

    def __init__(self, tenants: list[SchemaRef]):
        self._tenants = list(tenants)

    @classmethod
    def from_config(cls, entries: list[StaticTenant]) -> "StaticTenantDirectory":
        return cls([SchemaRef(key=e.key, schema_name=e.schema_name) for e in entries])

    def list_active_tenant_schemas(self) -> list[SchemaRef]:
        return list(self._tenants)


class AdminSchemaDirectory(TenantDirectory):
    """Reads the admin_schemas registry in the shared schema on every call."""

    def __init__(self, database: Database):
        self._db = database

    def list_active_tenant_schemas(self) -> list[SchemaRef]:
        try:
            with self._db.session() as db:
                rows = db.execute(
                    select(AdminSchema.schema_key, AdminSchema.schema_name)
                    .where(AdminSchema.status == "active")
                    .order_by(AdminSchema.schema_key)
                ).all()
        except SQLAlchemyError as e:
            raise PulseStoreError(f"Failed to list tenant schemas: {e}") from e

        tenants = [SchemaRef(key=key, schema_name=name) for key, name in rows]
        logger.debug(f"Tenant directory returned {len(tenants)} active schema(s)")
        return tenants

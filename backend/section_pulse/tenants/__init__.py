"""Tenant and society boundaries consumed by the pulse tracker."""

from section_pulse.tenants.directory import (
    AdminSchemaDirectory,
    StaticTenantDirectory,
    TenantDirectory,
)
from section_pulse.tenants.societies import SocietyRegistry, SqlSocietyRegistry

__all__ = [
    "AdminSchemaDirectory",
    "StaticTenantDirectory",
    "TenantDirectory",
    "SocietyRegistry",
    "SqlSocietyRegistry",
]

"""Wiring: builds the store, writer, reconciler and sweep from settings."""

import logging
from dataclasses import dataclass
from typing import Optional

from section_pulse.clock import Clock, SystemClock
from section_pulse.config import Settings
from section_pulse.exceptions import ConfigurationError
from section_pulse.pulse.diagnostics import PulseDiagnostics
from section_pulse.pulse.feed import CollectionFeed
from section_pulse.pulse.reconciler import PulseReconciler
from section_pulse.pulse.writer import PulseWriter
from section_pulse.scheduler import TenantSweep
from section_pulse.storage.database import Database, create_db_engine
from section_pulse.storage.pulse_store import PulseStore
from section_pulse.tenants.directory import (
    AdminSchemaDirectory,
    StaticTenantDirectory,
    TenantDirectory,
)
from section_pulse.tenants.societies import SocietyRegistry, SqlSocietyRegistry

logger = logging.getLogger(__name__)


@dataclass
class PulseRuntime:
    """Everything a CLI command, API process or scheduler needs."""

    settings: Settings
    database: Database
    clock: Clock
    store: PulseStore
    directory: TenantDirectory
    societies: SocietyRegistry
    writer: PulseWriter
    feed: CollectionFeed
    diagnostics: PulseDiagnostics
    reconciler: PulseReconciler
    sweep: TenantSweep

    def close(self) -> None:
        self.database.dispose()


def build_directory(settings: Settings, database: Database) -> TenantDirectory:
    if settings.tenants.source == "static":
        if not settings.tenants.static:
            raise ConfigurationError("tenants.source is static but tenants.static is empty")
        return StaticTenantDirectory.from_config(settings.tenants.static)
    return AdminSchemaDirectory(database)


def build_runtime(
    settings: Settings,
    database: Optional[Database] = None,
    clock: Optional[Clock] = None,
    directory: Optional[TenantDirectory] = None,
    societies: Optional[SocietyRegistry] = None,
) -> PulseRuntime:
    """Assemble the runtime; any collaborator can be injected (tests, replays)."""
    database = database or Database(create_db_engine(settings.database))
    clock = clock or SystemClock(settings.pulse.timezone)
    directory = directory or build_directory(settings, database)
    societies = societies or SqlSocietyRegistry(database)

    store = PulseStore(database)
    writer = PulseWriter(store, clock, settings.pulse.timezone)
    diagnostics = PulseDiagnostics(store, settings.pulse)
    reconciler = PulseReconciler(store, societies, settings.pulse, diagnostics)
    sweep = TenantSweep(directory, reconciler, clock, settings.scheduler.max_workers)

    logger.debug(
        f"Runtime ready: dialect={database.dialect_name} "
        f"tenants={settings.tenants.source} tz={settings.pulse.timezone}"
    )
    return PulseRuntime(
        settings=settings,
        database=database,
        clock=clock,
        store=store,
        directory=directory,
        societies=societies,
        writer=writer,
        feed=CollectionFeed(writer),
        diagnostics=diagnostics,
        reconciler=reconciler,
        sweep=sweep,
    )

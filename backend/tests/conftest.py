"""
Shared fixtures for the section pulse test suite.

Two layers:
    1. Unit        - pure functions and fakes, no database
    2. Integration - SQLite with one attached file per tenant schema,
                     driven by a FixedClock
"""

from datetime import datetime

import pytest
from sqlalchemy import insert

from section_pulse.clock import FixedClock
from section_pulse.config import (
    DatabaseConfig,
    PulseConfig,
    SchedulerConfig,
    Settings,
    StaticTenant,
    TenantsConfig,
)
from section_pulse.runtime import build_runtime
from section_pulse.schemas import SchemaRef
from section_pulse.storage import AdminSchema, Database, Society, attach_sqlite_schemas, create_db_engine
from section_pulse.tenants import StaticTenantDirectory

NORTH = SchemaRef(key="north", schema_name="tenant_north")
SOUTH = SchemaRef(key="south", schema_name="tenant_south")
# registered in the directory but never provisioned
EMPTY = SchemaRef(key="empty", schema_name="tenant_empty")

START = datetime(2024, 3, 10, 6, 0)


def pulse_config(**overrides) -> PulseConfig:
    values = {"pause_after_minutes": 5, "end_after_minutes": 60, "diagnose_on_reconcile": False}
    values.update(overrides)
    return PulseConfig(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'shared.db'}"),
        pulse=pulse_config(),
        scheduler=SchedulerConfig(max_workers=2, run_on_start=False),
        tenants=TenantsConfig(
            source="static",
            static=[StaticTenant(key=t.key, schema_name=t.schema_name) for t in (NORTH, SOUTH)],
        ),
    )


@pytest.fixture
def database(tmp_path, settings):
    schema_dir = tmp_path / "schemas"
    schema_dir.mkdir()

    engine = create_db_engine(settings.database)
    attach_sqlite_schemas(
        engine,
        schema_dir,
        [t.schema_name for t in (NORTH, SOUTH, EMPTY)],
    )
    db = Database(engine)

    AdminSchema.__table__.create(db.bind_for())
    for tenant in (NORTH, SOUTH, EMPTY):
        Society.__table__.create(db.bind_for(tenant.schema_name))

    yield db
    db.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def runtime(settings, database, clock):
    rt = build_runtime(
        settings,
        database=database,
        clock=clock,
        directory=StaticTenantDirectory([NORTH, SOUTH, EMPTY]),
    )
    rt.store.ensure_schema(NORTH)
    rt.store.ensure_schema(SOUTH)
    yield rt
    rt.close()


@pytest.fixture
def store(runtime):
    return runtime.store


def add_society(database: Database, tenant: SchemaRef, name: str, status: str = "active") -> int:
    """Insert a society row and return its id."""
    with database.session(tenant.schema_name) as db:
        result = db.execute(
            insert(Society).values(name=name, society_id=f"S-{name.upper()}", status=status)
        )
        return result.inserted_primary_key[0]


def register_schema(database: Database, key: str, schema_name: str, status: str = "active") -> None:
    with database.session() as db:
        db.execute(insert(AdminSchema).values(schema_key=key, schema_name=schema_name, status=status))

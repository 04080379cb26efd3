"""
Engine and session management.

This module provides:
- Engine construction from DatabaseConfig
- Tenant-bound sessions using schema_translate_map
- SQLite schema emulation via ATTACH DATABASE for local runs and tests
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from section_pulse.config import DatabaseConfig

logger = logging.getLogger(__name__)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create the shared engine for all tenant schemas."""
    if config.dialect == "sqlite":
        engine = create_engine(
            config.url,
            echo=config.echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        if config.sqlite_schema_dir is not None:
            attach_sqlite_schemas(engine, config.sqlite_schema_dir)
        return engine

    return create_engine(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_pre_ping=True,
        pool_recycle=config.pool_recycle_seconds,
    )


def attach_sqlite_schemas(
    engine: Engine,
    schema_dir: Path,
    schemas: Optional[Iterable[str]] = None,
) -> None:
    """
    Attach one SQLite file per tenant schema on every new connection.

    With no explicit list, every <schema>.db file in schema_dir is attached.
    SQLite only sees attachments made when the pooled connection opened, so
    schemas created later need a fresh engine.
    """
    schema_dir = Path(schema_dir)
    fixed = list(schemas) if schemas is not None else None

    @event.listens_for(engine, "connect")
    def _attach(dbapi_connection, connection_record):
        names = fixed if fixed is not None else sorted(p.stem for p in schema_dir.glob("*.db"))
        cursor = dbapi_connection.cursor()
        try:
            for name in names:
                path = schema_dir / f"{name}.db"
                cursor.execute(f"ATTACH DATABASE ? AS \"{name}\"", (str(path),))
        finally:
            cursor.close()


class Database:
    """Session factory shared by every tenant.

    Sessions opened with a schema have unqualified tables rewritten into that
    schema; sessions without one see the shared schema.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        self._bound_engines: dict[str, Engine] = {}
        self._bound_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def bind_for(self, schema: Optional[str] = None) -> Engine:
        """Engine view with the tenant schema applied to unqualified tables."""
        if schema is None:
            return self._engine
        with self._bound_lock:
            bound = self._bound_engines.get(schema)
            if bound is None:
                bound = self._engine.execution_options(schema_translate_map={None: schema})
                self._bound_engines[schema] = bound
            return bound

    @contextmanager
    def session(self, schema: Optional[str] = None) -> Generator[Session, None, None]:
        """
        Transactional session scope.

        Usage:
            with database.session(tenant.schema_name) as db:
                db.execute(update(SectionPulse)...)

        Commits on success, rolls back on any exception and re-raises it.
        """
        session = self._session_factory(bind=self.bind_for(schema))
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """Check if the database answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    def dispose(self) -> None:
        with self._bound_lock:
            self._bound_engines.clear()
        self._engine.dispose()

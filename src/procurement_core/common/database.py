"""Async database manager for Procurement-Core (single-DB)."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from procurement_core.common.config import ProcurementSettings, get_settings
from procurement_core.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import procurement_core.users.models  # noqa: F401
import procurement_core.permissions.models  # noqa: F401
import procurement_core.suppliers.models  # noqa: F401
import procurement_core.contracts.models  # noqa: F401
import procurement_core.payments.models  # noqa: F401
import procurement_core.documents.models  # noqa: F401
import procurement_core.audit.models  # noqa: F401
import procurement_core.notifications.models  # noqa: F401
import procurement_core.settings.models  # noqa: F401


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy issue BEGIN itself so SAVEPOINTs nest correctly on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: ProcurementSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False)
        if url.startswith("sqlite"):
            _enable_sqlite_savepoints(self.engine)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None

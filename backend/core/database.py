"""Database Module

Async engine, session factory and declarative base, plus small
Result-returning helpers used by routers and the store layer.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar
from uuid import UUID as PyUUID

from sqlalchemy import event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from core.config import settings
from core.errors import AppError, Ok, Err, Result, not_found, DatabaseErrorMapper

T = TypeVar("T")


class GUID(TypeDecorator):
    """Platform-agnostic GUID type.

    PostgreSQL's native UUID when available, otherwise CHAR(32) hex.
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        if isinstance(value, PyUUID):
            return value.hex
        return PyUUID(value).hex

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, PyUUID):
            return value
        return PyUUID(value)


def configure_sqlite(async_engine: AsyncEngine) -> None:
    """Enable foreign keys and SAVEPOINT support on sqlite connections.

    aiosqlite's implicit BEGIN handling breaks nested transactions, so the
    driver's own BEGIN is disabled and SQLAlchemy emits it instead.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine_kwargs = {
    "echo": settings.LOG_SQL,
}

if "sqlite" not in settings.DATABASE_URL:
    engine_kwargs.update({
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    })

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
configure_sqlite(engine)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()

_db_mapper = DatabaseErrorMapper("database")


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Session context manager for scripts."""
    async with AsyncSessionLocal() as session:
        yield session


async def fetch_one(
    session: AsyncSession,
    model: type[T],
    id: PyUUID,
    entity_name: str | None = None,
) -> Result[T, AppError]:
    """Ok(entity), Err(not_found) or Err(mapped database error)."""
    name = entity_name or model.__name__
    try:
        result = await session.execute(select(model).where(model.id == id))
        entity = result.scalar_one_or_none()
        if entity is None:
            return not_found(name, id, origin="database.fetch_one")
        return Ok(entity)
    except SQLAlchemyError as e:
        return Err(_db_mapper.map_exception(e))

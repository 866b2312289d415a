from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
import structlog

from app.core.config import settings

logger = structlog.get_logger()

Base = declarative_base()


def async_database_url(url: str) -> str:
    """Map a plain database URL onto its async driver"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Database:
    """
    Process-wide persistence handle.

    Constructed once at startup (FastAPI lifespan, Celery task), handed to
    request handlers through ``app.state.db`` and disposed on shutdown.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any):
        self.url = async_database_url(url)
        self.is_sqlite = self.url.startswith("sqlite")

        options: Dict[str, Any] = {"echo": echo}
        if not self.is_sqlite:
            options.update(
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        options.update(engine_kwargs)

        self.engine: AsyncEngine = create_async_engine(self.url, **options)

        if self.is_sqlite:
            # Cascading deletes rely on FK enforcement, which SQLite leaves off
            @event.listens_for(self.engine.sync_engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        from app.models import user, tenant, project, task, invitation, team  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session whose work commits as one unit, or rolls back on error"""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error("Database transaction rolled back", error=str(e))
                raise

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_database(url: Optional[str] = None) -> Database:
    return Database(url or settings.DATABASE_URL, echo=settings.DEBUG and settings.is_development)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency to get a request-scoped session; the request commits as one transaction
    """
    database: Database = request.app.state.db
    async with database.transaction() as session:
        yield session

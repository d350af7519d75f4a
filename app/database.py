"""Database utilities for the MoodReel service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData()


class Database:
    """Thin wrapper managing the SQLAlchemy async engine and sessions."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Add the secondary-locale and enrichment columns to older tables."""

        inspector = inspect(sync_connection)
        if "contents" not in inspector.get_table_names():
            return

        existing_columns = {
            column["name"] for column in inspector.get_columns("contents")
        }

        def _ensure_column(name: str, ddl: str, init_sql: str | None = None) -> None:
            if name in existing_columns:
                return
            sync_connection.execute(text(ddl))
            if init_sql:
                sync_connection.execute(text(init_sql))
            existing_columns.add(name)

        _ensure_column(
            "title_b", "ALTER TABLE contents ADD COLUMN title_b VARCHAR(255)"
        )
        _ensure_column(
            "description_b", "ALTER TABLE contents ADD COLUMN description_b TEXT"
        )
        _ensure_column(
            "tags_b",
            "ALTER TABLE contents ADD COLUMN tags_b JSON",
            "UPDATE contents SET tags_b = '[]' WHERE tags_b IS NULL",
        )
        _ensure_column(
            "providers",
            "ALTER TABLE contents ADD COLUMN providers JSON",
            "UPDATE contents SET providers = '[]' WHERE providers IS NULL",
        )
        _ensure_column(
            "force_included",
            "ALTER TABLE contents ADD COLUMN force_included BOOLEAN DEFAULT 0",
            "UPDATE contents SET force_included = 0 WHERE force_included IS NULL",
        )
        _ensure_column("embedding", "ALTER TABLE contents ADD COLUMN embedding JSON")
        _ensure_column(
            "cast_names",
            "ALTER TABLE contents ADD COLUMN cast_names JSON",
            "UPDATE contents SET cast_names = '[]' WHERE cast_names IS NULL",
        )
        _ensure_column(
            "director", "ALTER TABLE contents ADD COLUMN director VARCHAR(255)"
        )

    async def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with self.session_factory() as session:
            yield session

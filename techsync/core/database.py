"""
Database service for TechSync
Async SQLAlchemy engine and sessions backing the sync queue store
"""

import logging
from pathlib import Path
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from techsync.core.models import Base


class DatabaseService:
    """Async database service for the queue store"""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./data/techsync.db", echo: bool = False):
        self.database_url = database_url
        self.logger = logging.getLogger(__name__)

        url = make_url(database_url)
        engine_kwargs = {'echo': echo}

        if url.get_backend_name() == 'sqlite':
            database = url.database or ''
            if database in ('', ':memory:'):
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs['poolclass'] = StaticPool
            else:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            engine_kwargs['connect_args'] = {"check_same_thread": False}

        self.engine = create_async_engine(database_url, **engine_kwargs)

        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        self.logger.info(f"Database service initialized: {url.render_as_string(hide_password=True)}")

    async def create_tables(self):
        """Create tables using SQLAlchemy directly"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.logger.info("All tables created successfully")

    async def drop_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session, committed on clean exit"""
        async with self.SessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        """Check database connection health"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Database health check failed: {e}")
            return False

    async def close(self):
        """Close database connections"""
        await self.engine.dispose()
        self.logger.info("Database connections closed")

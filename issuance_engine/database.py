"""
Issuance Engine - Database.

============================================================
RESPONSIBILITY
============================================================
Async engine and session management for the audit store.

- Builds the engine from PersistenceConfig
- Session factory and transactional session scope
- Table creation for the issuance models

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import PersistenceConfig
from .models import Base


logger = logging.getLogger(__name__)


class IssuanceDatabase:
    """
    Owns the async engine of the issuance audit store.

    Usage:
        db = IssuanceDatabase(config.persistence)
        await db.create_tables()
        async with db.session_scope() as session:
            repo = IssuanceRepository(session)
    """

    def __init__(self, config: Optional[PersistenceConfig] = None):
        self._config = config or PersistenceConfig()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            url = self._config.database_url
            logger.info(f"Creating issuance database engine for: {url.split('@')[-1]}")
            self._engine = create_async_engine(url, echo=self._config.echo, future=True)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Issuance tables created")

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Session with automatic rollback on error.

        On exception:
            - Rolls back
            - Re-raises the exception
        """
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error, rolling back: {e}")
            await session.rollback()
            raise
        except Exception as e:
            logger.error(f"Unexpected error, rolling back: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

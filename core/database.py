"""
Database session management with SQLAlchemy async
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import Optional
from core.config import settings
from core.exceptions import ConfigurationError
import logging

logger = logging.getLogger(__name__)


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for the Postgres store"""
    url = database_url or settings.DATABASE_URL
    if not url:
        raise ConfigurationError(
            "DATABASE_URL is required for the postgres store",
            context={"store_backend": "postgres"}
        )

    return create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,
        future=True
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )

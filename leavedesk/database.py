"""Engine, session factory and the declarative base shared by every model."""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leavedesk.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

# Objects stay usable after commit: responses are built from them and
# notifications are dispatched after the request's transaction ends.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base; the schema itself is owned by the Alembic revisions."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session and one transaction per request.

    Commits when the endpoint returns, rolls back if it raised.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back request transaction", exc_info=True)
            await session.rollback()
            raise

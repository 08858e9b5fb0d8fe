"""Async database engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from modloot.config import get_settings

# Lazy initialization: engine created on first use, not at import time.
# Alembic and the CLI import the models without needing a live engine.
_engine = None
_async_session = None


def _get_engine():
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=settings.debug,
        )
    return _engine


def _get_session_maker():
    global _async_session
    if _async_session is None:
        _async_session = async_sessionmaker(
            _get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session


def session_scope() -> AsyncSession:
    """A standalone session for work outside the request's unit of work (audit writes, CLI)."""
    return _get_session_maker()()


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session."""
    session_maker = _get_session_maker()
    async with session_maker() as session:
        yield session


async def dispose_engine():
    global _engine, _async_session
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session = None

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from auditflow.core.config import settings


# Main engine for FastAPI (uses connection pooling)
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# === Worker session factory (SINGLETON) ===
# Used by Celery reminder tasks and by the collaborators (scheduler ledger,
# notification publisher) that write outside the request transaction.
# NullPool: every session gets a fresh connection bound to the current event loop.

_worker_engine = None
_worker_session_factory = None


def _get_worker_engine():
    """Get or create singleton worker engine with NullPool."""
    global _worker_engine
    if _worker_engine is None:
        _worker_engine = create_async_engine(
            settings.DATABASE_URL,
            echo=False,
            future=True,
            poolclass=NullPool,
        )
    return _worker_engine


def get_worker_session_factory() -> async_sessionmaker:
    """Get or create singleton session factory for out-of-request writes."""
    global _worker_session_factory
    if _worker_session_factory is None:
        _worker_session_factory = async_sessionmaker(
            _get_worker_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _worker_session_factory


async def dispose_worker_engine():
    """Dispose the worker engine on worker/app shutdown."""
    global _worker_engine, _worker_session_factory
    if _worker_engine is not None:
        await _worker_engine.dispose()
        _worker_engine = None
        _worker_session_factory = None

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from watchstatus.config import settings
from watchstatus.exceptions import InfrastructureError, TransactionTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo
)

# Session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def init_db():
    """Initialize the database, creating all tables."""
    # Import models to register them
    from watchstatus.models import catalog, watch_status  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def unit_of_work(
    session_factory: Optional[async_sessionmaker] = None,
    operation: str = "running a unit of work"
) -> AsyncIterator[AsyncSession]:
    """
    Open a session with a single transaction.

    Commits when the block exits normally and rolls back on any exception,
    including cancellation. Storage errors surface as InfrastructureError.
    """
    factory = session_factory or async_session
    async with factory() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Transaction rolled back while {operation}: {e}")
            raise InfrastructureError(operation) from e


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    operation: str,
    session_factory: Optional[async_sessionmaker] = None,
    timeout: Optional[float] = None
) -> T:
    """Run ``work`` inside one unit of work, bounded by the transaction timeout."""
    if timeout is None:
        timeout = settings.transaction_timeout_seconds

    async def _run() -> T:
        async with unit_of_work(session_factory, operation) as session:
            return await work(session)

    try:
        return await asyncio.wait_for(_run(), timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Transaction timed out after {timeout}s while {operation}")
        raise TransactionTimeoutError(operation, timeout) from e

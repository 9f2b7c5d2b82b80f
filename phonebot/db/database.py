"""Database connection and session management."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy import select

from phonebot.core.config import settings
from phonebot.db.models import Base, CallCounterRecord, CURRENT_CALLS

logger = logging.getLogger(__name__)


# Convert postgresql:// to postgresql+asyncpg:// for async support
database_url = settings.database_url
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
elif database_url.startswith("sqlite://"):
    database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

engine = create_async_engine(
    database_url,
    echo=False,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def seed_call_counter(session: AsyncSession) -> None:
    """Create the call counter row if it does not exist yet."""
    result = await session.execute(
        select(CallCounterRecord).where(CallCounterRecord.name == CURRENT_CALLS)
    )
    if result.scalar_one_or_none() is None:
        session.add(CallCounterRecord(name=CURRENT_CALLS, calls=0))
        await session.commit()
        logger.info(f"[DB] Seeded call counter '{CURRENT_CALLS}'")


async def init_db(db_engine: AsyncEngine = engine) -> None:
    """Initialize database tables and seed the call counter."""
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await seed_call_counter(session)


async def get_db() -> AsyncSession:
    """Dependency for getting database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
import logging

from config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

_engine_kwargs = {
    "echo": False,
    "pool_pre_ping": True,
}

# Pool sizing and asyncpg connect args only apply to PostgreSQL
if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10
    _engine_kwargs["pool_timeout"] = settings.STORAGE_TIMEOUT_SECONDS
    connect_args = {"command_timeout": settings.STORAGE_TIMEOUT_SECONDS}
    if settings.POSTGRES_SSLMODE == "require":
        connect_args["ssl"] = "require"
    _engine_kwargs["connect_args"] = connect_args

engine = create_async_engine(DATABASE_URL, **_engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(create_tables: bool = False):
    """Verify the database connection, optionally creating missing tables."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")

            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Reconciliation tables ensured")

            return True
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise

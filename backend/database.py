import asyncio
import logging
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import AsyncAdaptedQueuePool

from config.settings import DATABASE_URL
from models import Base

logger = logging.getLogger(__name__)

def make_engine(database_url: str = DATABASE_URL):
    """Create async engine, with pool settings for PostgreSQL"""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)

    return create_async_engine(
        database_url,
        echo=False,  # Set to True for SQL debugging
        poolclass=AsyncAdaptedQueuePool,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,  # Test connections before use
        pool_recycle=3600,   # Recycle connections every hour to prevent stale connections
        pool_timeout=30,     # Wait up to 30s for available connection
    )

def make_session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

engine = make_engine()

# Create session factory
AsyncSessionLocal = make_session_factory(engine)

async def init_db(db_engine=None, max_retries: int = 30, retry_delay: float = 1):
    """Initialize database tables with retry logic"""
    db_engine = db_engine or engine

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting database connection (attempt {attempt + 1}/{max_retries})")
            async with db_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Database initialized successfully")
                return
        except Exception as e:
            if "database system is starting up" in str(e).lower() or "cannot connect now" in str(e).lower():
                logger.warning(f"Database starting up, waiting {retry_delay}s... (attempt {attempt + 1}/{max_retries})")
                await asyncio.sleep(retry_delay)
                continue
            else:
                # For other errors, re-raise immediately
                logger.error(f"Database connection failed: {e}")
                raise

    # If we get here, all retries failed
    raise RuntimeError(f"Failed to connect to database after {max_retries} attempts")

async def get_db():
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        yield session

# Connection health check
async def check_db_health(session_factory=None) -> bool:
    """Check if database connection is healthy"""
    try:
        async with (session_factory or AsyncSessionLocal)() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception:
        return False

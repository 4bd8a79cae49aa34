"""
Async Database Configuration
"""
import logging
from urllib.parse import urlparse, parse_qs, urlunparse

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from nulex import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

if not DATABASE_URL:
    if config.TESTING:
        # Tests build their own engines; this one only has to be importable
        DATABASE_URL = "sqlite+aiosqlite:///:memory:"
        logger.warning("DATABASE_URL not set, using in-memory SQLite for testing")
    else:
        raise ValueError("DATABASE_URL environment variable is not set")

connect_args = {}
engine_kwargs = {}

if not DATABASE_URL.startswith("sqlite"):
    # asyncpg doesn't support query string parameters, so we remove them all
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)
    sslmode = query_params.pop("sslmode", [None])[0]
    DATABASE_URL = urlunparse(parsed._replace(query=""))

    if sslmode in ["require", "prefer", "allow", "verify-ca", "verify-full"]:
        connect_args["ssl"] = True
    elif sslmode == "disable":
        connect_args["ssl"] = False

    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_async_db():
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

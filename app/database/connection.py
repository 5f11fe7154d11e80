from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import AsyncAdaptedQueuePool
from app.core.config import settings
from app.core.logger import get_logger

logger = get_logger("database")


def make_engine(url: str) -> AsyncEngine:
    """Create an async engine for either the postgres or the sqlite backend."""
    logger.info(f"Database backend: {url.split(':', 1)[0]}")
    if url.startswith("sqlite"):
        # sqlite serialises writers; wait on the file lock instead of failing fast
        return create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": 15},
            future=True
        )

    ssl_config = {} if settings.ENVIRONMENT == "development" else {"ssl": "require"}
    return create_async_engine(
        url,
        echo=False,
        connect_args={
            **ssl_config,
            "server_settings": {
                "application_name": "simlink_broker",
                "jit": "off",
            },
            "command_timeout": 30,
        },
        poolclass=AsyncAdaptedQueuePool,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        future=True
    )


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False
    )


engine = make_engine(settings.DATABASE_URL)

AsyncSessionLocal = make_session_factory(engine)

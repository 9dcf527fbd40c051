from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from kas.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool settings per backend. SQLite (tests, single-laptop installs) has no server to drop idle connections."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {}
    # pool_pre_ping: check the connection is alive before use.
    # pool_recycle: discard connections older than this many seconds.
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    **engine_options(settings.database_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# users, sessions, transactions, weekly_payments
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; services commit explicitly."""
    async with AsyncSessionLocal() as session:
        yield session

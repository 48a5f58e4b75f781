import logging
import ssl

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from groupchat.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(db_url: str) -> dict:
    if not db_url.startswith("postgresql+asyncpg://"):
        return {}

    connect_args = {
        "statement_cache_size": 0,
        "prepared_statement_cache_size": 0,
    }
    if settings.DATABASE_SSL:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context

    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": connect_args,
    }


db_url = settings.async_database_url
# never log credentials
masked_url = db_url.split("@")[-1] if "@" in db_url else db_url.split("://")[0]
logger.info(f"DB engine config: host={masked_url}, ssl={settings.DATABASE_SSL}")

engine = create_async_engine(db_url, **_engine_options(db_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()

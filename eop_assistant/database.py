"""
Single async engine and session factory for the EOP assistant.

FastAPI (get_db) and the startup seeding share the same connection pool. One
session = one connection from the pool; sessions are closed after each request
so connections return to the pool.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from eop_assistant.config import DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local dev): no pooling, each session opens its own connection
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    # Connection timeout (seconds) so the service doesn't hang waiting for DB
    connect_args = {"timeout": 15} if "asyncpg" in url else {}
    return {
        "connect_args": connect_args,
        "pool_size": 5,
        "max_overflow": 5,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


engine = create_async_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from eop_assistant.database import Base
from eop_assistant.config import DATABASE_URL
import eop_assistant.models  # noqa: F401 - register Proposal etc. with Base.metadata


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from eop_assistant.services.rules_bank import seed_rules_bank

    engine = create_async_engine(DATABASE_URL, echo=True)
    await create_tables(engine)
    print("Database tables created successfully!")

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as db:
        created = await seed_rules_bank(db)
    print("Rules bank created." if created else "Rules bank already exists.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())

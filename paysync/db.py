from typing import Optional

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker

from .config import settings

# process-wide handles, set up by init_db() at startup
engine: Optional[AsyncEngine] = None
async_session: Optional[sessionmaker] = None


async def init_db(database_url: Optional[str] = None):
    global engine, async_session

    engine = create_async_engine(
        database_url or settings.database_url,
        echo=False,
        future=True,
    )
    async_session = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    # importing registers the tables on SQLModel.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        # if you prefer migrations, run alembic instead
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db():
    global engine, async_session

    if engine is not None:
        await engine.dispose()
    engine = None
    async_session = None


def get_sessionmaker() -> sessionmaker:
    if async_session is None:
        raise RuntimeError("Database is not initialised, call init_db() first")
    return async_session


def get_session() -> AsyncSession:
    return get_sessionmaker()()

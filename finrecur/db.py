from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import get_settings


Base = declarative_base()


def get_engine(url: str | None = None):
    settings = get_settings()
    engine = create_async_engine(url or settings.DATABASE_URL, echo=False, future=True)
    return engine


def make_sessionmaker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


_engine = get_engine()
AsyncSessionLocal = make_sessionmaker(_engine)


async def create_tables(engine=None) -> None:
    async with (engine or _engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from shasta_wallet.core.config import settings


def build_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    return create_async_engine(url, echo=settings.DEBUG, future=True)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)

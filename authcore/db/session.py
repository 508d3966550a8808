# authcore/db/session.py
from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from authcore.core.exceptions import DurableStoreError


def create_engine(database_url: str, *, pool_size: int = 10, echo: bool = False) -> AsyncEngine:
    """Cria a engine assíncrona. O driver vem da própria URL (asyncpg, aiosqlite...)."""
    if not database_url:
        raise RuntimeError("DATABASE_URL não definida. Verifique o .env")

    kwargs: dict = {"pool_pre_ping": True, "echo": echo}
    if not database_url.startswith("sqlite"):
        # SQLite usa pool próprio sem tamanho configurável
        kwargs.update(pool_size=pool_size, max_overflow=pool_size)
    try:
        return create_async_engine(database_url, **kwargs)
    except Exception as e:
        raise RuntimeError(f"Could not create async engine: {e}") from e


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """
    Uma sessão curta por operação. Erros do banco são convertidos em
    DurableStoreError (retryable) depois do rollback.
    """
    async with session_factory() as db:
        try:
            yield db
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Erro no banco de dados: {e}")
            raise DurableStoreError() from e

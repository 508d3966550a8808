# authcore/db/initial_data.py
import asyncio

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from authcore.core.config import get_settings
from authcore.db.base import Base
from authcore.db.session import create_engine

# Importar TODOS os modelos para que Base.metadata os conheça
from authcore.models import refresh_token, user  # noqa: F401


async def init_db(engine: AsyncEngine, *, drop_existing: bool = False) -> None:
    async with engine.begin() as conn:
        if drop_existing:
            logger.info("Removendo todas as tabelas existentes (se houver)...")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelas criadas com sucesso.")


async def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.DATABASE_URL)
    try:
        await init_db(engine, drop_existing=True)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

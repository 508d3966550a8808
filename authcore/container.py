# authcore/container.py
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from authcore.cache.redis_store import RedisStore
from authcore.cache.session_cache import SessionCache
from authcore.core.config import Settings, TokenSettings
from authcore.core.events import LoguruEventSink
from authcore.core.security import TokenSigner
from authcore.db.session import create_engine, create_session_factory
from authcore.services.auth_service import AuthService
from authcore.services.token_service import TokenService
from authcore.services.users import UserDirectory


@dataclass
class Container:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    store: RedisStore
    cache: SessionCache
    tokens: TokenService
    users: UserDirectory
    auth: AuthService
    token_settings: TokenSettings

    async def close(self) -> None:
        await self.store.close()
        await self.engine.dispose()


def build_container(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    store: RedisStore | None = None,
) -> Container:
    """Raiz de composição: monta tudo explicitamente a partir das configurações."""
    token_settings = settings.token_settings()

    engine = engine or create_engine(settings.DATABASE_URL, pool_size=settings.DB_POOL_SIZE)
    session_factory = create_session_factory(engine)
    store = store or RedisStore.from_url(
        settings.REDIS_URL,
        operation_timeout=settings.REDIS_OPERATION_TIMEOUT,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        events=LoguruEventSink("redis"),
    )

    cache = SessionCache(store, token_settings, events=LoguruEventSink("session_cache"))
    tokens = TokenService(session_factory, cache, events=LoguruEventSink("token_service"))
    users = UserDirectory(session_factory)
    auth = AuthService(
        config=token_settings,
        tokens=tokens,
        cache=cache,
        users=users,
        signer=TokenSigner(token_settings.algorithm),
        events=LoguruEventSink("auth_service"),
    )
    return Container(
        engine=engine,
        session_factory=session_factory,
        store=store,
        cache=cache,
        tokens=tokens,
        users=users,
        auth=auth,
        token_settings=token_settings,
    )

"""
Fixtures comuns: banco SQLite (aiosqlite) por teste, Redis falso (fakeredis)
e os componentes do núcleo montados como na raiz de composição.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./authcore-test.db")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

import pytest  # noqa: E402
from fakeredis import FakeAsyncRedis  # noqa: E402

from authcore.cache.redis_store import RedisStore  # noqa: E402
from authcore.cache.session_cache import SessionCache  # noqa: E402
from authcore.core.config import TokenSettings  # noqa: E402
from authcore.core.security import TokenSigner, get_password_hash  # noqa: E402
from authcore.db.initial_data import init_db  # noqa: E402
from authcore.db.session import create_engine, create_session_factory  # noqa: E402
from authcore.models.user import User  # noqa: E402
from authcore.services.auth_service import AuthService  # noqa: E402
from authcore.services.token_service import TokenService  # noqa: E402
from authcore.services.users import UserDirectory  # noqa: E402

USER_PASSWORD = "Sup3r-Secret!"

TEST_TOKEN_SETTINGS = TokenSettings(
    access_token_ttl=15 * 60,
    refresh_token_ttl=7 * 86400,
    access_secret="test-access-secret",
    refresh_secret="test-refresh-secret",
)


class RecordingEventSink:
    """Guarda os eventos emitidos para as asserções."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def emit(self, event: str, *, level: str = "INFO", **fields) -> None:
        self.events.append((event, level.upper(), fields))

    def named(self, event: str) -> list[tuple[str, str, dict]]:
        return [e for e in self.events if e[0] == event]


@pytest.fixture
def token_settings() -> TokenSettings:
    return TEST_TOKEN_SETTINGS


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'authcore.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def redis_client():
    client = FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def store(redis_client, events) -> RedisStore:
    return RedisStore(redis_client, operation_timeout=1.0, events=events)


@pytest.fixture
async def unreachable_store(events):
    # Porta 1: conexão recusada imediatamente
    store = RedisStore.from_url("redis://127.0.0.1:1/0", operation_timeout=0.2, events=events)
    yield store
    await store.close()


@pytest.fixture
def cache(store, token_settings, events) -> SessionCache:
    return SessionCache(store, token_settings, events=events)


@pytest.fixture
def token_service(session_factory, cache, events) -> TokenService:
    return TokenService(session_factory, cache, events=events)


@pytest.fixture
def users(session_factory) -> UserDirectory:
    return UserDirectory(session_factory)


@pytest.fixture
def signer(token_settings) -> TokenSigner:
    return TokenSigner(token_settings.algorithm)


@pytest.fixture
def auth_service(token_settings, token_service, cache, users, signer, events) -> AuthService:
    return AuthService(
        config=token_settings,
        tokens=token_service,
        cache=cache,
        users=users,
        signer=signer,
        events=events,
    )


async def _insert_user(session_factory, **fields) -> User:
    async with session_factory() as db:
        user = User(**fields)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


@pytest.fixture(scope="session")
def password_hash() -> str:
    # bcrypt é lento: um hash para a sessão inteira
    return get_password_hash(USER_PASSWORD)


@pytest.fixture
async def user(session_factory, password_hash) -> User:
    return await _insert_user(
        session_factory,
        id="user_ana",
        email="ana@example.com",
        name="Ana",
        avatar="https://example.com/ana.png",
        hashed_password=password_hash,
    )


@pytest.fixture
async def other_user(session_factory, password_hash) -> User:
    return await _insert_user(
        session_factory,
        id="user_bruno",
        email="bruno@example.com",
        name="Bruno",
        hashed_password=password_hash,
    )

import asyncio
from datetime import timedelta

import pytest

from authcore.cache.keys import SessionCacheKeys
from authcore.cache.session_cache import SessionCache
from authcore.core.clock import utc_now
from authcore.core.exceptions import UnauthorizedError
from authcore.core.security import TokenSigner, generate_secure_token
from authcore.models.user import User
from authcore.schemas.token import TokenPayload
from authcore.services.auth_service import AuthService
from authcore.services.token_service import RevocationResult, TokenService

USER_PASSWORD = "Sup3r-Secret!"


async def test_login_issues_pair_and_caches_session(auth_service: AuthService, cache, user, signer, token_settings):
    result = await auth_service.login("ana@example.com", USER_PASSWORD)

    assert result.user.id == user.id
    assert result.tokens.token_type == "bearer"
    assert result.tokens.expires_in == token_settings.access_token_ttl

    access = TokenPayload.model_validate(signer.verify(result.tokens.access_token, token_settings.access_secret))
    refresh = TokenPayload.model_validate(signer.verify(result.tokens.refresh_token, token_settings.refresh_secret))
    assert access.type == "access" and access.sub == user.id
    assert refresh.type == "refresh" and refresh.family

    session = await cache.get_user_session(user.id)
    assert session is not None and session.email == "ana@example.com"


async def test_login_email_is_case_insensitive(auth_service: AuthService, user):
    result = await auth_service.login("Ana@Example.com", USER_PASSWORD)
    assert result.user.id == user.id


async def test_login_stamps_last_login(auth_service: AuthService, users, user):
    assert user.last_logged_in_at is None
    await auth_service.login("ana@example.com", USER_PASSWORD)
    assert (await users.find_by_id(user.id)).last_logged_in_at is not None


async def test_each_login_opens_a_new_family(auth_service: AuthService, signer, token_settings, user):
    first = await auth_service.login("ana@example.com", USER_PASSWORD)
    second = await auth_service.login("ana@example.com", USER_PASSWORD)
    family = lambda pair: signer.verify(pair.tokens.refresh_token, token_settings.refresh_secret)["family"]  # noqa: E731
    assert family(first) != family(second)


@pytest.mark.parametrize(
    "email, password",
    [
        ("ana@example.com", "wrong-password"),
        ("nobody@example.com", USER_PASSWORD),
    ],
)
async def test_login_failures_are_indistinguishable(auth_service: AuthService, events, user, email, password):
    with pytest.raises(UnauthorizedError) as exc_info:
        await auth_service.login(email, password)
    assert exc_info.value.message == "Incorrect email or password"
    assert events.named("auth.login_failed")


async def test_inactive_user_cannot_login(auth_service: AuthService, session_factory, user):
    async with session_factory() as db:
        db_user = await db.get(User, user.id)
        db_user.is_active = False
        await db.commit()

    with pytest.raises(UnauthorizedError) as exc_info:
        await auth_service.login("ana@example.com", USER_PASSWORD)
    assert exc_info.value.message == "Incorrect email or password"


async def test_refresh_rotates_within_the_family(auth_service: AuthService, token_service: TokenService, signer, token_settings, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token

    pair = await auth_service.refresh(r1)

    assert pair.refresh_token != r1
    assert await token_service.find_by_token(r1) is None
    assert await token_service.find_by_token(pair.refresh_token) is not None
    family_of = lambda raw: signer.verify(raw, token_settings.refresh_secret)["family"]  # noqa: E731
    assert family_of(pair.refresh_token) == family_of(r1)


async def test_reuse_of_rotated_token_revokes_the_family(auth_service: AuthService, token_service: TokenService, events, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token
    r2 = (await auth_service.refresh(r1)).refresh_token

    with pytest.raises(UnauthorizedError) as exc_info:
        await auth_service.refresh(r1)
    assert exc_info.value.message == "Invalid refresh token"

    reuse = events.named("security.token_reuse")
    assert len(reuse) == 1
    assert reuse[0][1] == "CRITICAL"
    assert reuse[0][2]["user_id"] == user.id

    # O descendente legítimo também cai
    assert await token_service.find_by_token(r2) is None
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(r2)


async def test_reuse_detected_even_after_cache_loss(auth_service: AuthService, token_service: TokenService, redis_client, events, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token
    r2 = (await auth_service.refresh(r1)).refresh_token
    await redis_client.flushall()

    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(r1)

    assert events.named("security.token_reuse")
    row = await token_service.get_token_by_raw(r2)
    assert row.is_revoked is True


async def test_other_families_survive_reuse(auth_service: AuthService, user):
    laptop = await auth_service.login("ana@example.com", USER_PASSWORD)
    phone = await auth_service.login("ana@example.com", USER_PASSWORD)
    await auth_service.refresh(laptop.tokens.refresh_token)

    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(laptop.tokens.refresh_token)

    pair = await auth_service.refresh(phone.tokens.refresh_token)
    assert pair.refresh_token


async def test_concurrent_refresh_has_a_single_winner(auth_service: AuthService, token_service: TokenService, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token

    results = await asyncio.gather(
        auth_service.refresh(r1),
        auth_service.refresh(r1),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(successes) == 1
    assert all(isinstance(f, UnauthorizedError) for f in failures)

    # Nenhum token da família continua utilizável depois do reuso
    active = [row for row in await token_service.list_user_tokens(user.id) if not row.is_revoked]
    assert active == []
    for pair in successes:
        assert await token_service.find_by_token(pair.refresh_token) is None


@pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
async def test_refresh_rejects_garbage(auth_service: AuthService, garbage):
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(garbage)


async def test_refresh_rejects_access_token(auth_service: AuthService, user, token_settings):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    forged = TokenSigner().sign({"sub": user.id, "type": "access"}, token_settings.refresh_secret, 60)

    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(login.tokens.access_token)
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(forged)


async def test_refresh_rejects_unknown_but_well_signed_token(auth_service: AuthService, events, user, token_settings):
    stray = TokenSigner().sign(
        {"sub": user.id, "type": "refresh", "family": "fam-x", "jti": "1"}, token_settings.refresh_secret, 60
    )
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(stray)
    # Token desconhecido não é reuso
    assert not events.named("security.token_reuse")


async def test_refresh_rejects_subject_mismatch(auth_service: AuthService, token_service: TokenService, user, other_user, token_settings):
    raw = TokenSigner().sign(
        {"sub": other_user.id, "type": "refresh", "family": "fam-x", "jti": "2"}, token_settings.refresh_secret, 60
    )
    await token_service.create_refresh_token(
        user_id=user.id,
        raw_token=raw,
        family="fam-x",
        expires_at=utc_now() + timedelta(minutes=5),
    )
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(raw)


async def test_logout_revokes_the_token(auth_service: AuthService, token_service: TokenService, events, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token

    await auth_service.logout(r1)
    assert await token_service.find_by_token(r1) is None

    # Logout repetido ou com lixo não falha
    await auth_service.logout(r1)
    await auth_service.logout("garbage")
    assert len(events.named("auth.logout")) == 1


async def test_logout_all_revokes_every_device(auth_service: AuthService, token_service: TokenService, cache, user):
    a = await auth_service.login("ana@example.com", USER_PASSWORD)
    b = await auth_service.login("ana@example.com", USER_PASSWORD)

    assert await auth_service.logout_all(user.id) == 2

    for login in (a, b):
        assert await token_service.find_by_token(login.tokens.refresh_token) is None
    assert await cache.get_user_session(user.id) is None
    assert await auth_service.logout_all(user.id) == 0


async def test_validate_access_token_uses_the_session_cache(auth_service: AuthService, cache, user):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    payload = auth_service.signer.verify(login.tokens.access_token, auth_service.config.access_secret)

    principal = await auth_service.validate_access_token(payload)
    assert principal.id == user.id and principal.email == user.email

    # Sem a sessão em cache, vai ao banco e reabastece
    await cache.invalidate_user_session(user.id)
    principal = await auth_service.validate_access_token(TokenPayload.model_validate(payload))
    assert principal.id == user.id
    assert await cache.get_user_session(user.id) is not None


async def test_validate_access_token_rejects_other_types(auth_service: AuthService, user):
    assert await auth_service.validate_access_token({"sub": user.id, "type": "refresh"}) is None
    assert await auth_service.validate_access_token({"sub": user.id}) is None
    assert await auth_service.validate_access_token({"sub": "user_ghost", "type": "access"}) is None


async def test_authenticate(auth_service: AuthService, user, token_settings):
    login = await auth_service.login("ana@example.com", USER_PASSWORD)
    assert (await auth_service.authenticate(login.tokens.access_token)).id == user.id

    wrong_secret = TokenSigner().sign({"sub": user.id, "type": "access"}, "another-secret", 60)
    with pytest.raises(UnauthorizedError):
        await auth_service.authenticate(wrong_secret)
    with pytest.raises(UnauthorizedError):
        await auth_service.authenticate(login.tokens.refresh_token)


async def test_invalidate_user_drops_cached_session(auth_service: AuthService, redis_client, user):
    await auth_service.login("ana@example.com", USER_PASSWORD)
    assert await redis_client.exists(SessionCacheKeys.user_session(user.id)) == 1

    await auth_service.invalidate_user(user.id)
    assert await redis_client.exists(SessionCacheKeys.user_session(user.id)) == 0


@pytest.fixture
def auth_without_redis(session_factory, unreachable_store, token_settings, users, signer, events) -> AuthService:
    cache = SessionCache(unreachable_store, token_settings, events=events)
    return AuthService(
        config=token_settings,
        tokens=TokenService(session_factory, cache, events=events),
        cache=cache,
        users=users,
        signer=signer,
        events=events,
    )


async def test_racing_rotation_is_locked_out_without_redis(auth_without_redis: AuthService, user):
    auth = auth_without_redis
    login = await auth.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token
    parent = await auth.tokens.find_by_token(r1)

    # Rotação A vence a escrita condicional e grava o filho na mesma transação
    child_raw = generate_secure_token()
    result, child = await auth.tokens.rotate_refresh_token(
        parent.id, raw_token=child_raw, expires_at=utc_now() + timedelta(days=7)
    )
    assert result is RevocationResult.REVOKED

    # Rotação B chega com o mesmo R1: reuso, a família inteira cai
    with pytest.raises(UnauthorizedError):
        await auth.refresh(r1)

    assert await auth.cache.is_family_revoked(parent.family) is False
    assert await auth.tokens.find_by_token(child_raw) is None
    assert (await auth.tokens.get_token_by_raw(child_raw)).is_revoked is True


async def test_concurrent_refresh_without_redis_leaves_no_valid_child(auth_without_redis: AuthService, user):
    auth = auth_without_redis
    login = await auth.login("ana@example.com", USER_PASSWORD)
    r1 = login.tokens.refresh_token

    results = await asyncio.gather(auth.refresh(r1), auth.refresh(r1), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, BaseException)]
    assert len(successes) == 1
    assert all(isinstance(r, UnauthorizedError) for r in results if isinstance(r, BaseException))
    assert [row for row in await auth.tokens.list_user_tokens(user.id) if not row.is_revoked] == []
    assert await auth.tokens.find_by_token(successes[0].refresh_token) is None

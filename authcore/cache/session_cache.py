# authcore/cache/session_cache.py
from typing import Optional

from pydantic import ValidationError

from authcore.core.config import TokenSettings
from authcore.core.events import EventSink, LoguruEventSink, short_hash
from authcore.schemas.session import CachedRefreshToken, CachedUserSession

from .keys import SessionCacheKeys
from .redis_store import RedisStore


class SessionCache:
    """
    Camada cache-aside de sessões e refresh tokens.

    Tudo aqui é best-effort: uma falha no Redis só reduz a taxa de acerto,
    nunca chega ao chamador como erro. O banco continua sendo a fonte da verdade.
    """

    def __init__(self, store: RedisStore, config: TokenSettings, events: Optional[EventSink] = None):
        self.store = store
        self.user_session_ttl = config.access_token_ttl
        self.refresh_token_ttl = config.refresh_token_ttl
        self.events = events or LoguruEventSink("session_cache")

    # --- Sessão do usuário ---
    async def cache_user_session(self, user_id: str, session: CachedUserSession) -> bool:
        key = SessionCacheKeys.user_session(user_id)
        ok = await self.store.set_json(key, session.model_dump(mode="json"), self.user_session_ttl)
        if ok:
            self.events.emit("cache.session_stored", level="DEBUG", user_id=user_id)
        return ok

    async def get_user_session(self, user_id: str) -> Optional[CachedUserSession]:
        data = await self.store.get_json(SessionCacheKeys.user_session(user_id))
        if data is None:
            return None
        try:
            return CachedUserSession.model_validate(data)
        except ValidationError:
            await self.store.delete(SessionCacheKeys.user_session(user_id))
            return None

    async def invalidate_user_session(self, user_id: str) -> None:
        await self.store.delete(SessionCacheKeys.user_session(user_id))
        self.events.emit("cache.session_invalidated", user_id=user_id)

    # --- Projeção do refresh token ---
    async def cache_refresh_token(self, token: CachedRefreshToken, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            # Já expirado: nada a espelhar
            return False
        key = SessionCacheKeys.refresh_token(token.token_hash)
        ok = await self.store.set_json(key, token.model_dump(mode="json"), ttl_seconds)
        await self._add_token_to_user_set(token.user_id, token.token_hash)
        await self._add_token_to_family_set(token.family, token.token_hash)
        self.events.emit("cache.refresh_token_stored", level="DEBUG", token=short_hash(token.token_hash), ttl=ttl_seconds)
        return ok

    async def get_cached_refresh_token(self, token_hash: str) -> Optional[CachedRefreshToken]:
        data = await self.store.get_json(SessionCacheKeys.refresh_token(token_hash))
        if data is None:
            return None
        try:
            return CachedRefreshToken.model_validate(data)
        except ValidationError:
            await self.store.delete(SessionCacheKeys.refresh_token(token_hash))
            return None

    async def remove_cached_refresh_token(self, token_hash: str) -> None:
        token = await self.get_cached_refresh_token(token_hash)
        await self.store.delete(SessionCacheKeys.refresh_token(token_hash))
        if token:
            await self._remove_token_from_user_set(token.user_id, token_hash)
            await self._remove_token_from_family_set(token.family, token_hash)
        self.events.emit("cache.refresh_token_removed", level="DEBUG", token=short_hash(token_hash))

    # --- Revogação ---
    async def mark_token_as_revoked(
        self,
        token_hash: str,
        *,
        user_id: Optional[str] = None,
        family: Optional[str] = None,
    ) -> None:
        """
        Grava o marcador de revogação e remove a projeção e os índices.

        O TTL do marcador é o tempo de vida do refresh token (não a validade
        restante deste token), para que sobreviva a qualquer projeção antiga.
        `user_id`/`family` vindos do banco permitem limpar os índices mesmo
        sem a projeção no cache.
        """
        cached = await self.get_cached_refresh_token(token_hash)

        await self.store.set(SessionCacheKeys.revoked_token(token_hash), "1", self.refresh_token_ttl)
        await self.store.delete(SessionCacheKeys.refresh_token(token_hash))

        user_ids = {u for u in (user_id, cached.user_id if cached else None) if u}
        families = {f for f in (family, cached.family if cached else None) if f}
        for uid in user_ids:
            await self._remove_token_from_user_set(uid, token_hash)
        for fam in families:
            await self._remove_token_from_family_set(fam, token_hash)

        self.events.emit("cache.token_revoked", token=short_hash(token_hash))

    async def is_token_revoked(self, token_hash: str) -> bool:
        return await self.store.exists(SessionCacheKeys.revoked_token(token_hash))

    async def mark_family_revoked(self, family: str) -> None:
        await self.store.set(SessionCacheKeys.revoked_family(family), "1", self.refresh_token_ttl)

    async def is_family_revoked(self, family: str) -> bool:
        return await self.store.exists(SessionCacheKeys.revoked_family(family))

    async def revoke_token_family(self, family: str) -> list[str]:
        key = SessionCacheKeys.token_family(family)
        token_hashes = await self.store.smembers(key)
        for token_hash in token_hashes:
            await self.mark_token_as_revoked(token_hash, family=family)
        await self.store.delete(key)
        await self.mark_family_revoked(family)
        self.events.emit("cache.family_revoked", level="WARNING", family=family, count=len(token_hashes))
        return token_hashes

    async def revoke_all_user_tokens(self, user_id: str) -> list[str]:
        key = SessionCacheKeys.user_tokens(user_id)
        token_hashes = await self.store.smembers(key)
        for token_hash in token_hashes:
            await self.mark_token_as_revoked(token_hash, user_id=user_id)
        await self.store.delete(key)
        await self.invalidate_user_session(user_id)
        self.events.emit("cache.user_tokens_revoked", level="WARNING", user_id=user_id, count=len(token_hashes))
        return token_hashes

    async def get_user_token_hashes(self, user_id: str) -> list[str]:
        return await self.store.smembers(SessionCacheKeys.user_tokens(user_id))

    async def get_family_token_hashes(self, family: str) -> list[str]:
        return await self.store.smembers(SessionCacheKeys.token_family(family))

    # --- Índices de fan-out ---
    async def _add_token_to_family_set(self, family: str, token_hash: str) -> None:
        key = SessionCacheKeys.token_family(family)
        await self.store.sadd(key, token_hash)
        await self.store.expire(key, self.refresh_token_ttl)

    async def _remove_token_from_family_set(self, family: str, token_hash: str) -> None:
        await self.store.srem(SessionCacheKeys.token_family(family), token_hash)

    async def _add_token_to_user_set(self, user_id: str, token_hash: str) -> None:
        key = SessionCacheKeys.user_tokens(user_id)
        await self.store.sadd(key, token_hash)
        await self.store.expire(key, self.refresh_token_ttl)

    async def _remove_token_from_user_set(self, user_id: str, token_hash: str) -> None:
        await self.store.srem(SessionCacheKeys.user_tokens(user_id), token_hash)

# authcore/services/token_service.py
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.cache.session_cache import SessionCache
from authcore.core.clock import seconds_until, utc_now
from authcore.core.events import EventSink, LoguruEventSink, short_hash
from authcore.core.security import hash_token
from authcore.crud import crud_refresh_token
from authcore.db.session import session_scope
from authcore.schemas.session import CachedRefreshToken, StoredRefreshToken


class RevocationResult(enum.Enum):
    REVOKED = "revoked"
    # A escrita condicional não afetou linhas: alguém revogou antes.
    # Na rotação isso é sinal de reuso.
    ALREADY_REVOKED = "already_revoked"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class TokenMetadata:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class TokenService:
    """
    Fonte da verdade dos refresh tokens: banco primeiro, depois o cache.

    Todo caminho de leitura reconfere o marcador de revogação e a expiração,
    então uma projeção defasada no cache nunca valida um token revogado.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: SessionCache,
        events: Optional[EventSink] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.events = events or LoguruEventSink("token_service")

    async def create_refresh_token(
        self,
        *,
        user_id: str,
        raw_token: str,
        family: str,
        expires_at: datetime,
        metadata: Optional[TokenMetadata] = None,
    ) -> StoredRefreshToken:
        metadata = metadata or TokenMetadata()
        token_hash = hash_token(raw_token)

        # Falha aqui aborta a emissão do par (DurableStoreError)
        async with session_scope(self.session_factory) as db:
            db_token = await crud_refresh_token.create_refresh_token(
                db,
                user_id=user_id,
                token_hash=token_hash,
                family=family,
                expires_at=expires_at,
                user_agent=metadata.user_agent,
                ip_address=metadata.ip_address,
            )
            stored = StoredRefreshToken.model_validate(db_token)

        ttl = max(0, seconds_until(expires_at))
        if ttl > 0:
            await self.cache.cache_refresh_token(self._projection(stored), ttl)
        else:
            # Já expirado: fica só no banco para auditoria
            self.events.emit("token.created_expired", level="DEBUG", token=short_hash(token_hash))

        self.events.emit("token.created", level="DEBUG", user_id=user_id, family=family, token=short_hash(token_hash))
        return stored

    async def find_by_token(self, raw_token: str) -> Optional[StoredRefreshToken]:
        return await self.find_by_token_hash(hash_token(raw_token))

    async def find_by_token_hash(self, token_hash: str) -> Optional[StoredRefreshToken]:
        if await self.cache.is_token_revoked(token_hash):
            self.events.emit("token.revoked_cache_hit", level="DEBUG", token=short_hash(token_hash))
            return None

        cached = await self.cache.get_cached_refresh_token(token_hash)
        if cached:
            if cached.is_revoked or cached.expires_at <= utc_now():
                await self.cache.remove_cached_refresh_token(token_hash)
                return None
            if await self.cache.is_family_revoked(cached.family):
                return None
            self.events.emit("token.cache_hit", level="DEBUG", token=short_hash(token_hash))
            return StoredRefreshToken.model_validate(cached.model_dump())

        async with session_scope(self.session_factory) as db:
            db_token = await crud_refresh_token.get_active_by_hash(db, token_hash=token_hash)
            stored = StoredRefreshToken.model_validate(db_token) if db_token else None

        if stored is None:
            return None
        if await self.cache.is_family_revoked(stored.family):
            return None

        ttl = seconds_until(stored.expires_at)
        if ttl > 0:
            await self.cache.cache_refresh_token(self._projection(stored), ttl)
        return stored

    async def get_token_by_raw(self, raw_token: str) -> Optional[StoredRefreshToken]:
        """Consulta direta no banco, incluindo tokens revogados ou expirados."""
        async with session_scope(self.session_factory) as db:
            db_token = await crud_refresh_token.get_by_hash(db, token_hash=hash_token(raw_token))
            return StoredRefreshToken.model_validate(db_token) if db_token else None

    async def revoke_token(self, token_id: str) -> RevocationResult:
        async with session_scope(self.session_factory) as db:
            db_token = await crud_refresh_token.get(db, token_id=token_id)
            if db_token is None:
                return RevocationResult.NOT_FOUND
            token_hash, user_id, family = db_token.token_hash, db_token.user_id, db_token.family
            # O resultado da escrita condicional é o sinal autoritativo,
            # não o is_revoked lido acima
            changed = await crud_refresh_token.revoke_if_active(db, token_id=token_id)

        # Reafirma o marcador nos dois casos: o cache pode ter perdido o anterior
        await self.cache.mark_token_as_revoked(token_hash, user_id=user_id, family=family)

        if not changed:
            self.events.emit("token.already_revoked", level="DEBUG", token_id=token_id)
            return RevocationResult.ALREADY_REVOKED

        self.events.emit("token.revoked", level="DEBUG", token_id=token_id)
        return RevocationResult.REVOKED

    async def rotate_refresh_token(
        self,
        token_id: str,
        *,
        raw_token: str,
        expires_at: datetime,
        metadata: Optional[TokenMetadata] = None,
    ) -> Tuple[RevocationResult, Optional[StoredRefreshToken]]:
        """
        Troca o token `token_id` por um filho da mesma família.

        Revogação do pai e inserção do filho são uma única transação, então
        uma revogação de família concorrente nunca deixa o filho de fora,
        com ou sem Redis. ALREADY_REVOKED não grava nada.
        """
        metadata = metadata or TokenMetadata()
        new_hash = hash_token(raw_token)

        async with session_scope(self.session_factory) as db:
            parent = await crud_refresh_token.get(db, token_id=token_id)
            if parent is None:
                return RevocationResult.NOT_FOUND, None
            parent_hash, user_id, family = parent.token_hash, parent.user_id, parent.family
            child = await crud_refresh_token.rotate_refresh_token(
                db,
                token_id=token_id,
                user_id=user_id,
                family=family,
                token_hash=new_hash,
                expires_at=expires_at,
                user_agent=metadata.user_agent,
                ip_address=metadata.ip_address,
            )
            stored = StoredRefreshToken.model_validate(child) if child else None

        await self.cache.mark_token_as_revoked(parent_hash, user_id=user_id, family=family)

        if stored is None:
            self.events.emit("token.already_revoked", level="DEBUG", token_id=token_id)
            return RevocationResult.ALREADY_REVOKED, None

        ttl = seconds_until(expires_at)
        if ttl > 0:
            await self.cache.cache_refresh_token(self._projection(stored), ttl)

        self.events.emit("token.rotated", level="DEBUG", token_id=token_id, family=family, token=short_hash(new_hash))
        return RevocationResult.REVOKED, stored

    async def revoke_token_family(self, family: str) -> list[str]:
        """
        Revoga a família inteira (usado quando há reuso de token).

        Primeiro o índice do cache, token a token; depois uma revogação em massa
        no banco cobre os hashes que o índice perdeu.
        """
        revoked: set[str] = set()
        # Marcador antes da varredura: um filho inserido depois dela ainda
        # é barrado pela rotação que o criou
        await self.cache.mark_family_revoked(family)

        for token_hash in await self.cache.get_family_token_hashes(family):
            async with session_scope(self.session_factory) as db:
                db_token = await crud_refresh_token.get_by_hash(db, token_hash=token_hash)
                token_id = db_token.id if db_token else None
            if token_id and await self.revoke_token(token_id) is RevocationResult.REVOKED:
                revoked.add(token_hash)

        async with session_scope(self.session_factory) as db:
            swept = await crud_refresh_token.revoke_family(db, family=family)
        for row in swept:
            await self.cache.mark_token_as_revoked(row.token_hash, user_id=row.user_id, family=row.family)
        revoked.update(row.token_hash for row in swept)

        await self.cache.revoke_token_family(family)

        self.events.emit("token.family_revoked", level="WARNING", family=family, count=len(revoked))
        return sorted(revoked)

    async def revoke_all_user_tokens(self, user_id: str) -> list[str]:
        """Revoga todos os refresh tokens do usuário e derruba a sessão em cache."""
        revoked: set[str] = set()

        for token_hash in await self.cache.get_user_token_hashes(user_id):
            async with session_scope(self.session_factory) as db:
                db_token = await crud_refresh_token.get_by_hash(db, token_hash=token_hash)
                token_id = db_token.id if db_token else None
            if token_id and await self.revoke_token(token_id) is RevocationResult.REVOKED:
                revoked.add(token_hash)

        async with session_scope(self.session_factory) as db:
            swept = await crud_refresh_token.revoke_all_for_user(db, user_id=user_id)
        for row in swept:
            await self.cache.mark_token_as_revoked(row.token_hash, user_id=row.user_id, family=row.family)
        revoked.update(row.token_hash for row in swept)

        # Limpa o índice e invalida a sessão
        await self.cache.revoke_all_user_tokens(user_id)

        self.events.emit("token.user_tokens_revoked", level="INFO", user_id=user_id, count=len(revoked))
        return sorted(revoked)

    async def cleanup_expired_tokens(self) -> int:
        # As entradas no cache expiram sozinhas pelo TTL
        async with session_scope(self.session_factory) as db:
            removed = await crud_refresh_token.prune_expired_tokens(db)
        self.events.emit("token.cleanup", level="INFO", removed=removed)
        return removed

    async def list_user_tokens(self, user_id: str) -> list[StoredRefreshToken]:
        async with session_scope(self.session_factory) as db:
            rows = await crud_refresh_token.get_multi_by_user(db, user_id=user_id)
            return [StoredRefreshToken.model_validate(row) for row in rows]

    async def count_cached_user_tokens(self, user_id: str) -> int:
        return len(await self.cache.get_user_token_hashes(user_id))

    @staticmethod
    def _projection(token: StoredRefreshToken) -> CachedRefreshToken:
        return CachedRefreshToken(
            id=token.id,
            user_id=token.user_id,
            family=token.family,
            token_hash=token.token_hash,
            expires_at=token.expires_at,
            is_revoked=token.is_revoked,
        )

# authcore/crud/crud_refresh_token.py
from datetime import datetime
from typing import NamedTuple, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import utc_now
from authcore.core.security import generate_unique_id
from authcore.models.refresh_token import RefreshToken


class SweptToken(NamedTuple):
    """Linha afetada por uma revogação em massa: o suficiente para limpar os dois índices do cache."""

    token_hash: str
    user_id: str
    family: str


async def create_refresh_token(
    db: AsyncSession,
    *,
    user_id: str,
    token_hash: str,
    family: str,
    expires_at: datetime,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> RefreshToken:
    """Insere o hash de um novo refresh token (nunca o token em si)."""
    db_token = RefreshToken(
        id=generate_unique_id("refresh-token"),
        user_id=user_id,
        token_hash=token_hash,
        family=family,
        expires_at=expires_at,
        created_at=utc_now(),
        is_revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.add(db_token)
    await db.commit()
    await db.refresh(db_token)
    return db_token


async def get(db: AsyncSession, *, token_id: str) -> Optional[RefreshToken]:
    result = await db.execute(select(RefreshToken).where(RefreshToken.id == token_id))
    return result.scalars().first()


async def get_by_hash(db: AsyncSession, *, token_hash: str) -> Optional[RefreshToken]:
    """Busca pelo hash sem filtrar revogação/expiração."""
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
    return result.scalars().first()


async def get_active_by_hash(db: AsyncSession, *, token_hash: str) -> Optional[RefreshToken]:
    """Só devolve o token se não estiver revogado nem expirado."""
    stmt = select(RefreshToken).where(
        RefreshToken.token_hash == token_hash,
        RefreshToken.is_revoked == False,  # noqa: E712
        RefreshToken.expires_at > utc_now(),
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_multi_by_user(db: AsyncSession, *, user_id: str) -> Sequence[RefreshToken]:
    stmt = (
        select(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .order_by(RefreshToken.created_at.desc())
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def revoke_if_active(db: AsyncSession, *, token_id: str) -> bool:
    """
    Escrita condicional: só revoga se ainda não estiver revogado.
    Retorna False quando nenhuma linha foi afetada (já revogado ou inexistente).
    É o único ponto de exclusão mútua entre duas rotações do mesmo token.
    """
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.id == token_id, RefreshToken.is_revoked == False)  # noqa: E712
        .values(is_revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1


async def rotate_refresh_token(
    db: AsyncSession,
    *,
    token_id: str,
    user_id: str,
    family: str,
    token_hash: str,
    expires_at: datetime,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Optional[RefreshToken]:
    """
    Revoga o token antigo e insere o filho na MESMA transação.

    Se a escrita condicional não afetar linhas, nada é gravado e retorna None.
    Quem revogar a família depois de ver o pai revogado também vê o filho.
    """
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.id == token_id, RefreshToken.is_revoked == False)  # noqa: E712
        .values(is_revoked=True)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        await db.rollback()
        return None

    db_token = RefreshToken(
        id=generate_unique_id("refresh-token"),
        user_id=user_id,
        token_hash=token_hash,
        family=family,
        expires_at=expires_at,
        created_at=utc_now(),
        is_revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.add(db_token)
    await db.commit()
    await db.refresh(db_token)
    return db_token


async def revoke_family(db: AsyncSession, *, family: str) -> list[SweptToken]:
    """Revoga a família inteira; retorna os tokens que mudaram de estado."""
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.family == family, RefreshToken.is_revoked == False)  # noqa: E712
        .values(is_revoked=True)
        .returning(RefreshToken.token_hash, RefreshToken.user_id, RefreshToken.family)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    swept = [SweptToken(*row) for row in result.all()]
    await db.commit()
    return swept


async def revoke_all_for_user(db: AsyncSession, *, user_id: str) -> list[SweptToken]:
    """Revoga todos os refresh tokens de um usuário (ex: logout de todos os dispositivos)."""
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked == False)  # noqa: E712
        .values(is_revoked=True)
        .returning(RefreshToken.token_hash, RefreshToken.user_id, RefreshToken.family)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    swept = [SweptToken(*row) for row in result.all()]
    await db.commit()
    return swept


async def prune_expired_tokens(db: AsyncSession) -> int:
    """Remove tokens expirados do banco (pode ser rodado periodicamente)."""
    stmt = delete(RefreshToken).where(RefreshToken.expires_at < utc_now())
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount  # Número de linhas deletadas

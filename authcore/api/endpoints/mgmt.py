# authcore/api/endpoints/mgmt.py
from fastapi import APIRouter, Depends, Path, status

from authcore.api.dependencies import get_auth_service, get_token_service
from authcore.schemas.token import SessionInfo, UserSessions
from authcore.services.auth_service import AuthService
from authcore.services.token_service import TokenService

router = APIRouter()


@router.post("/tokens/cleanup")
async def cleanup_expired_tokens(tokens: TokenService = Depends(get_token_service)) -> dict:
    """
    Remove do banco os refresh tokens expirados.
    Pensado para ser chamado por um cron; protegido pela X-API-Key (definido no app).
    """
    removed = await tokens.cleanup_expired_tokens()
    return {"removed": removed}


@router.get("/users/{user_id}/sessions", response_model=UserSessions)
async def list_user_sessions(
    user_id: str = Path(...),
    tokens: TokenService = Depends(get_token_service),
) -> UserSessions:
    rows = await tokens.list_user_tokens(user_id)
    return UserSessions(
        user_id=user_id,
        cached_token_count=await tokens.count_cached_user_tokens(user_id),
        sessions=[
            SessionInfo(
                id=row.id,
                family=row.family,
                is_revoked=row.is_revoked,
                expires_at=row.expires_at.isoformat(),
                created_at=row.created_at.isoformat() if row.created_at else None,
                user_agent=row.user_agent,
                ip_address=row.ip_address,
            )
            for row in rows
        ],
    )


@router.delete("/users/{user_id}/sessions", status_code=status.HTTP_200_OK)
async def revoke_user_sessions(
    user_id: str = Path(...),
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    """Logout forçado em todos os dispositivos (ex: conta comprometida)."""
    revoked = await auth.logout_all(user_id)
    return {"revoked": revoked}


@router.post("/users/{user_id}/session/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_user_session(
    user_id: str = Path(...),
    auth: AuthService = Depends(get_auth_service),
) -> None:
    """Chamado pelo serviço de usuários depois de alterar o cadastro."""
    await auth.invalidate_user(user_id)

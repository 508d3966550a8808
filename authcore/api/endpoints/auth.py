# authcore/api/endpoints/auth.py
from fastapi import APIRouter, Depends, status

from authcore.api.dependencies import get_auth_service, get_current_user, get_token_metadata
from authcore.schemas.session import AuthenticatedUser
from authcore.schemas.token import LoginRequest, LoginResult, RefreshTokenRequest, TokenPair
from authcore.services.auth_service import AuthService
from authcore.services.token_service import TokenMetadata

router = APIRouter()


@router.post("/login", response_model=LoginResult)
async def login(
    *,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    metadata: TokenMetadata = Depends(get_token_metadata),
) -> LoginResult:
    """
    Login para obter Access e Refresh tokens.

    Cada login abre uma nova família de refresh tokens (um dispositivo).
    """
    return await auth.login(body.email, body.password, metadata)


@router.post("/refresh", response_model=TokenPair)
async def refresh_access_token(
    *,
    body: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
    metadata: TokenMetadata = Depends(get_token_metadata),
) -> TokenPair:
    # Rotação: o refresh token enviado deixa de valer.
    # Reusar um token já rotacionado derruba a família inteira.
    return await auth.refresh(body.refresh_token, metadata)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(*, body: RefreshTokenRequest, auth: AuthService = Depends(get_auth_service)) -> None:
    await auth.logout(body.refresh_token)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(
    current_user: AuthenticatedUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> None:
    """Revoga os refresh tokens de todos os dispositivos do usuário logado."""
    await auth.logout_all(current_user.id)


@router.get("/me", response_model=AuthenticatedUser)
async def read_users_me(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    return current_user

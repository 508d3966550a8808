# authcore/api/dependencies.py
import secrets  # Importar secrets para comparação segura

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from authcore.container import Container
from authcore.core.config import Settings, get_settings
from authcore.core.exceptions import UnauthorizedError
from authcore.schemas.session import AuthenticatedUser
from authcore.services.auth_service import AuthService
from authcore.services.token_service import TokenMetadata, TokenService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_auth_service(container: Container = Depends(get_container)) -> AuthService:
    return container.auth


def get_token_service(container: Container = Depends(get_container)) -> TokenService:
    return container.tokens


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_token_metadata(request: Request) -> TokenMetadata:
    return TokenMetadata(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> AuthenticatedUser:
    try:
        return await auth.authenticate(token)
    except UnauthorizedError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


# --- DEPENDÊNCIA DA CHAVE DE API (X-API-Key) ---
api_key_header_scheme = APIKeyHeader(name="X-API-Key")


async def get_api_key(
    api_key: str = Depends(api_key_header_scheme),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Verifica se a X-API-Key enviada no header é válida."""
    if not settings.INTERNAL_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY não está configurada no servidor",
        )
    # Compara as chaves de forma segura para evitar timing attacks
    if not secrets.compare_digest(api_key, settings.INTERNAL_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Chave de API inválida ou ausente",
        )
    return api_key

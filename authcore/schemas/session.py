# authcore/schemas/session.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CachedUserSession(BaseModel):
    """Projeção do usuário guardada em `session:{user_id}`."""

    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    cached_at: int  # epoch em milissegundos


class CachedRefreshToken(BaseModel):
    """Projeção desnormalizada do RefreshToken guardada em `refresh-token:{hash}`."""

    id: str
    user_id: str
    family: str
    token_hash: str
    expires_at: datetime  # UTC naive, igual ao banco
    is_revoked: bool = False


class StoredRefreshToken(BaseModel):
    """
    Registro de refresh token devolvido pelo TokenService, venha ele do banco
    ou da projeção no cache (nesse caso os campos opcionais ficam vazios).
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    token_hash: str
    family: str
    is_revoked: bool
    expires_at: datetime
    created_at: Optional[datetime] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class AuthenticatedUser(BaseModel):
    """Principal confiável entregue ao middleware de autorização."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    avatar: Optional[str] = None

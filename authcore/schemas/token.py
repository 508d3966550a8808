# authcore/schemas/token.py
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from .session import AuthenticatedUser


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int  # validade do access token, em segundos
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    type: Literal["access", "refresh"]
    # Apenas em refresh tokens
    family: Optional[str] = None
    jti: Optional[str] = None
    iat: Optional[int] = None
    exp: Optional[int] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class LoginResult(BaseModel):
    user: AuthenticatedUser
    tokens: TokenPair


class SessionInfo(BaseModel):
    """Refresh token listado no endpoint de gerenciamento (sem o hash)."""

    id: str
    family: str
    is_revoked: bool
    expires_at: str
    created_at: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class UserSessions(BaseModel):
    user_id: str
    cached_token_count: int
    sessions: list[SessionInfo]

# authcore/services/auth_service.py
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from authcore.cache.session_cache import SessionCache
from authcore.core.clock import utc_now
from authcore.core.config import TokenSettings
from authcore.core.events import EventSink, LoguruEventSink
from authcore.core.exceptions import InvalidTokenError, UnauthorizedError
from authcore.core.security import TokenSigner, generate_family, generate_secure_token, verify_password
from authcore.models.user import User
from authcore.schemas.session import AuthenticatedUser, CachedUserSession
from authcore.schemas.token import LoginResult, TokenPair, TokenPayload

from .token_service import RevocationResult, TokenMetadata, TokenService
from .users import UserDirectory

PasswordVerifier = Callable[[str, str], bool]


class AuthService:
    """
    Orquestra login, rotação de refresh token, logout e validação de access token.

    Toda falha de autenticação vira o mesmo UnauthorizedError: o cliente nunca
    descobre se o token expirou, foi revogado ou foi reutilizado.
    """

    def __init__(
        self,
        *,
        config: TokenSettings,
        tokens: TokenService,
        cache: SessionCache,
        users: UserDirectory,
        signer: Optional[TokenSigner] = None,
        password_verifier: PasswordVerifier = verify_password,
        events: Optional[EventSink] = None,
    ):
        self.config = config
        self.tokens = tokens
        self.cache = cache
        self.users = users
        self.signer = signer or TokenSigner(config.algorithm)
        self.password_verifier = password_verifier
        self.events = events or LoguruEventSink("auth_service")

    # --- Login ---
    async def login(self, email: str, password: str, metadata: Optional[TokenMetadata] = None) -> LoginResult:
        user = await self.users.find_by_email(email)
        # Mesma resposta para email inexistente, senha errada ou conta inativa
        if not user or not self.password_verifier(password, user.hashed_password):
            self.events.emit("auth.login_failed", level="WARNING", email=email)
            raise UnauthorizedError("Incorrect email or password")
        if not user.is_active:
            self.events.emit("auth.login_failed", level="WARNING", email=email, reason="inactive")
            raise UnauthorizedError("Incorrect email or password")

        await self.users.mark_logged_in(user.id)
        await self._cache_user_session(user)

        family = generate_family()
        tokens, expires_at = self._sign_token_pair(user, family=family)
        await self.tokens.create_refresh_token(
            user_id=user.id,
            raw_token=tokens.refresh_token,
            family=family,
            expires_at=expires_at,
            metadata=metadata,
        )
        self.events.emit("auth.login", user_id=user.id)
        return LoginResult(user=self._principal(user), tokens=tokens)

    # --- Rotação ---
    async def refresh(self, refresh_token: str, metadata: Optional[TokenMetadata] = None) -> TokenPair:
        payload = self._decode(refresh_token, self.config.refresh_secret)
        if payload.type != "refresh" or not payload.family:
            raise UnauthorizedError("Invalid refresh token")

        stored = await self.tokens.find_by_token(refresh_token)
        if stored is None:
            # Revogado no banco = já foi rotacionado ou deslogado: reuso.
            # Sem linha (ou só expirado) é lixo ou já limpo: apenas rejeita.
            row = await self.tokens.get_token_by_raw(refresh_token)
            if row is not None and row.is_revoked:
                await self._handle_reuse(row.family, row.user_id)
            raise UnauthorizedError("Invalid refresh token")

        if stored.user_id != payload.sub:
            raise UnauthorizedError("Invalid refresh token")

        user = await self.users.find_by_id(stored.user_id)
        if not user or not user.is_active:
            raise UnauthorizedError("Invalid refresh token")

        # Revogar o antigo e gravar o novo é uma transação só no banco:
        # o par só sai se a escrita condicional confirmar
        tokens, expires_at = self._sign_token_pair(user, family=stored.family)
        result, _ = await self.tokens.rotate_refresh_token(
            stored.id, raw_token=tokens.refresh_token, expires_at=expires_at, metadata=metadata
        )
        if result is RevocationResult.ALREADY_REVOKED:
            await self._handle_reuse(stored.family, stored.user_id)
            raise UnauthorizedError("Invalid refresh token")
        if result is RevocationResult.NOT_FOUND:
            raise UnauthorizedError("Invalid refresh token")

        # Família marcada por um reuso concorrente: o filho cai junto.
        # Sem Redis, a varredura no banco de quem detectou o reuso já o inclui
        if await self.cache.is_family_revoked(stored.family):
            await self.tokens.revoke_token_family(stored.family)

        self.events.emit("auth.refreshed", user_id=user.id, family=stored.family)
        return tokens

    # --- Logout ---
    async def logout(self, refresh_token: str) -> None:
        stored = await self.tokens.find_by_token(refresh_token)
        if stored is None:
            return
        result = await self.tokens.revoke_token(stored.id)
        if result is RevocationResult.REVOKED:
            self.events.emit("auth.logout", user_id=stored.user_id, token_id=stored.id)

    async def logout_all(self, user_id: str) -> int:
        revoked = await self.tokens.revoke_all_user_tokens(user_id)
        self.events.emit("auth.logout_all", user_id=user_id, count=len(revoked))
        return len(revoked)

    # --- Validação de access token ---
    async def validate_access_token(
        self, payload: Union[TokenPayload, Mapping[str, Any]]
    ) -> Optional[AuthenticatedUser]:
        if not isinstance(payload, TokenPayload):
            try:
                payload = TokenPayload.model_validate(payload)
            except ValidationError:
                return None
        if payload.type != "access":
            return None

        cached = await self.cache.get_user_session(payload.sub)
        if cached:
            self.events.emit("auth.session_cache_hit", level="DEBUG", user_id=payload.sub)
            return AuthenticatedUser(id=cached.id, email=cached.email, name=cached.name, avatar=cached.avatar)

        user = await self.users.find_by_id(payload.sub)
        if not user or not user.is_active:
            return None
        await self._cache_user_session(user)
        return self._principal(user)

    async def authenticate(self, access_token: str) -> AuthenticatedUser:
        """Verifica o JWT de acesso e devolve o principal, ou levanta UnauthorizedError."""
        payload = self._decode(access_token, self.config.access_secret)
        principal = await self.validate_access_token(payload)
        if principal is None:
            raise UnauthorizedError()
        return principal

    async def invalidate_user(self, user_id: str) -> None:
        """Chamar depois de qualquer alteração no cadastro do usuário."""
        await self.cache.invalidate_user_session(user_id)

    # --- Helpers ---
    async def _handle_reuse(self, family: str, user_id: str) -> None:
        self.events.emit("security.token_reuse", level="CRITICAL", family=family, user_id=user_id)
        await self.tokens.revoke_token_family(family)

    def _decode(self, token: str, secret: str) -> TokenPayload:
        raw = self.signer.verify(token, secret)
        try:
            return TokenPayload.model_validate(raw)
        except ValidationError as e:
            raise InvalidTokenError() from e

    async def _cache_user_session(self, user: User) -> None:
        session = CachedUserSession(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=user.avatar,
            cached_at=int(time.time() * 1000),
        )
        await self.cache.cache_user_session(user.id, session)

    def _sign_token_pair(self, user: User, *, family: str) -> Tuple[TokenPair, datetime]:
        access_token = self.signer.sign(
            {"sub": user.id, "email": user.email, "type": "access"},
            self.config.access_secret,
            self.config.access_token_ttl,
        )
        refresh_token = self.signer.sign(
            {
                "sub": user.id,
                "email": user.email,
                "type": "refresh",
                "family": family,
                # Garante hash único mesmo com dois tokens no mesmo segundo
                "jti": generate_secure_token(),
            },
            self.config.refresh_secret,
            self.config.refresh_token_ttl,
        )
        expires_at = utc_now() + timedelta(seconds=self.config.refresh_token_ttl)
        tokens = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.config.access_token_ttl,
        )
        return tokens, expires_at

    @staticmethod
    def _principal(user: User) -> AuthenticatedUser:
        return AuthenticatedUser(id=user.id, email=user.email, name=user.name, avatar=user.avatar)

# authcore/core/security.py
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from .exceptions import InvalidTokenError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        # Limita o tamanho da senha ANTES de passar para o bcrypt (evita erros > 72 bytes)
        password_bytes = plain_password.encode("utf-8")[:72]
        return pwd_context.verify(password_bytes, hashed_password)
    except (ValueError, TypeError):
        # Hash malformado conta como senha incorreta
        return False


def get_password_hash(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    return pwd_context.hash(password_bytes)


# --- Identificadores e hashes de token ---
def hash_token(token: str) -> str:
    """SHA-256 hex do segredo bruto. Só o hash é persistido."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_secure_token() -> str:
    return secrets.token_hex(32)


def generate_family() -> str:
    return str(uuid.uuid4())


def generate_unique_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(14)}"


# --- JWT ---
class TokenSigner:
    """Assina e verifica JWTs. O chamador escolhe o segredo e o TTL."""

    def __init__(self, algorithm: str = "HS256"):
        self.algorithm = algorithm

    def sign(self, payload: Dict[str, Any], secret: str, ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        to_encode = payload.copy()
        to_encode.update({
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds),
        })
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidTokenError() from e

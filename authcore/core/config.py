# authcore/core/config.py
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from loguru import logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .durations import parse_duration

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = BASE_DIR / ".env"


@dataclass(frozen=True)
class TokenSettings:
    """Configuração explícita dos tokens, passada aos construtores."""

    access_token_ttl: int  # segundos
    refresh_token_ttl: int  # segundos
    access_secret: str
    refresh_secret: str
    algorithm: str = "HS256"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    ALGORITHM: str = "HS256"

    # Tokens
    JWT_ACCESS_SECRET: str
    JWT_ACCESS_EXPIRES_IN: str = "15m"
    JWT_REFRESH_SECRET: str
    JWT_REFRESH_EXPIRES_IN: str = "7d"

    # Pools e timeouts
    DB_POOL_SIZE: int = 10
    REDIS_MAX_CONNECTIONS: int = 50
    # Precisa ser menor que o timeout da requisição
    REDIS_OPERATION_TIMEOUT: float = 0.5

    # Chave de API Interna (endpoints /mgmt)
    INTERNAL_API_KEY: str

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    @field_validator("JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        # TTL zero gravaria marcadores e sessões sem expiração no Redis
        if parse_duration(v) <= 0:
            raise ValueError(f"Duration must be positive: {v!r}")
        return v

    @property
    def access_token_ttl(self) -> int:
        return parse_duration(self.JWT_ACCESS_EXPIRES_IN)

    @property
    def refresh_token_ttl(self) -> int:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    def token_settings(self) -> TokenSettings:
        return TokenSettings(
            access_token_ttl=self.access_token_ttl,
            refresh_token_ttl=self.refresh_token_ttl,
            access_secret=self.JWT_ACCESS_SECRET,
            refresh_secret=self.JWT_REFRESH_SECRET,
            algorithm=self.ALGORITHM,
        )


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()
    except Exception as e:
        logger.error(f"FATAL: Erro ao carregar 'settings' a partir do ambiente/.env em {ENV_FILE_PATH}: {e}")
        raise

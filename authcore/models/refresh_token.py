# authcore/models/refresh_token.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.core.clock import utc_now
from authcore.db.base import Base


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    # Armazena um HASH do token, não o token em si, por segurança
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    # Todos os tokens descendentes do mesmo login; nunca muda depois de criado
    family: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)  # UTC naive
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))

    __table_args__ = (Index("ix_refresh_tokens_family_revoked", "family", "is_revoked"),)

# authcore/models/user.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from authcore.core.clock import utc_now
from authcore.db.base import Base


class User(Base):
    """
    Usuário. O CRUD completo pertence a outro módulo; o núcleo só lê estes
    campos e carimba `last_logged_in_at`.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(500))
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_logged_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime)  # UTC naive

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

# authcore/services/users.py
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.crud.crud_user import user as crud_user
from authcore.db.session import session_scope
from authcore.models.user import User


class UserDirectory:
    """Consulta de principais usada pelo núcleo. Cada chamada usa sua própria sessão."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_id(self, user_id: str) -> Optional[User]:
        async with session_scope(self.session_factory) as db:
            return await crud_user.get(db, id=user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        async with session_scope(self.session_factory) as db:
            return await crud_user.get_by_email(db, email=email)

    async def mark_logged_in(self, user_id: str) -> None:
        async with session_scope(self.session_factory) as db:
            await crud_user.touch_last_login(db, user_id=user_id)

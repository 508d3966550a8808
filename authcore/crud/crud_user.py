# authcore/crud/crud_user.py
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import utc_now
from authcore.models.user import User


class CRUDUser:
    # Só leitura + carimbo de login; cadastro e edição ficam fora do núcleo
    async def get(self, db: AsyncSession, *, id: str) -> Optional[User]:
        return await db.get(User, id)

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower())
        result = await db.execute(stmt)
        return result.scalars().first()

    async def touch_last_login(self, db: AsyncSession, *, user_id: str) -> None:
        now = utc_now()
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(last_logged_in_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        await db.commit()


user = CRUDUser()

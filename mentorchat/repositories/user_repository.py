from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.models import User
from mentorchat.schemas.user import UserRole

from .base import BaseRepository


class UserRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        stmt = select(User).filter(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).filter(User.email == email)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_users_by_ids(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = list(user_ids)
        if not ids:
            return {}
        stmt = select(User).filter(User.id.in_(ids))
        result = await self.session.execute(stmt)
        return {user.id: user for user in result.scalars().all()}

    async def list_contacts(self, user: User) -> Sequence[User]:
        """Lists who ``user`` may message.

        Patients see active mentors, mentors see patients and admins see everyone.
        """
        stmt = select(User).filter(User.id != user.id, User.is_active.is_(True))
        if user.role == UserRole.PATIENT:
            stmt = stmt.filter(User.role == UserRole.MENTOR)
        elif user.role == UserRole.MENTOR:
            stmt = stmt.filter(User.role == UserRole.PATIENT)

        stmt = stmt.order_by(User.full_name, User.email)
        result = await self.session.execute(stmt)
        return result.scalars().all()

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from identity_api.dao.base import BaseDAO
from identity_api.models import User
from identity_api.tokens import generate_raw_token


class UserDAO(BaseDAO):
    async def find_by_id(self, user_id: int) -> User | None:
        async with self._session() as session:
            return await session.get(User, user_id)

    async def find_by_email(self, email: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(
                select(User).where(func.lower(User.email) == email.lower())
            )
            return result.scalar_one_or_none()

    async def create_user(self, username: str, email: str, password_hash: str) -> User:
        user = User(username=username, email=email.lower(), password_hash=password_hash)
        async with self._session() as session:
            session.add(user)
            await session.commit()
        return user

    async def ban_user(
        self,
        user_id: int,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> User | None:
        return await self._update(
            user_id, is_banned=True, ban_reason=reason, ban_expires_at=expires_at
        )

    async def unban_user(self, user_id: int) -> User | None:
        return await self._update(user_id, is_banned=False, ban_reason=None, ban_expires_at=None)

    async def update_profile_picture(self, user_id: int, avatar: str) -> User | None:
        return await self._update(user_id, avatar=avatar)

    async def update_profile_banner(self, user_id: int, profile_banner: str) -> User | None:
        return await self._update(user_id, profile_banner=profile_banner)

    async def update_bio(self, user_id: int, description: str) -> User | None:
        return await self._update(user_id, description=description)

    async def update_username(self, user_id: int, username: str) -> User | None:
        return await self._update(user_id, username=username)

    async def update_email(self, user_id: int, email: str) -> User | None:
        return await self._update(user_id, email=email.lower())

    async def update_password(self, user_id: int, password_hash: str) -> User | None:
        return await self._update(user_id, password_hash=password_hash)

    async def update_stream_token(self, user_id: int) -> User | None:
        return await self._update(user_id, stream_token=generate_raw_token())

    async def _update(self, user_id: int, **values: Any) -> User | None:
        async with self._session() as session:
            user = await session.get(User, user_id)
            if user is None:
                return None
            for field, value in values.items():
                setattr(user, field, value)
            await session.commit()
            return user

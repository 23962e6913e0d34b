import logging
from datetime import datetime

from identity_api.cache.users import UserCacheDAO
from identity_api.dao.users import UserDAO
from identity_api.domain import Description, Email, Password, UserId, Username
from identity_api.errors import DaoError, RepositoryNotFoundError
from identity_api.models import User
from identity_api.repositories.base import BaseRepository
from identity_api.schemas import UserRecord

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """User access with a read-through cache.

    Reads try the cache first and fall back to the store. Writes go to the
    store first; the cache is refreshed afterwards. The cache is advisory, so
    a cache failure is logged and never replaces what the store returned.
    """

    def __init__(self, dao: UserDAO, cache: UserCacheDAO) -> None:
        self._dao = dao
        self._cache = cache

    async def get_user_by_id(self, user_id: int) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        try:
            cached = await self._cache.find_by_id(uid.value)
        except DaoError as exc:
            logger.warning("user cache read failed user_id=%s: %s", uid.value, exc.message)
            cached = None
        if cached is not None:
            return cached
        return await self._remember(await self._call(self._dao.find_by_id(uid.value)))

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        address = self._validated(Email, email)
        try:
            cached = await self._cache.find_by_email(address.value)
        except DaoError as exc:
            logger.warning("user cache read by email failed: %s", exc.message)
            cached = None
        if cached is not None:
            return cached
        return await self._remember(await self._call(self._dao.find_by_email(address.value)))

    async def require_user(self, user_id: int) -> UserRecord:
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise RepositoryNotFoundError("user", user_id)
        return user

    async def authenticate(self, email: str, password: str) -> UserRecord | None:
        user = await self.get_user_by_email(email)
        if user is None or not Password.from_hash(user.password_hash).verify(password):
            return None
        return user

    async def create_user(self, username: str, email: str, password: str) -> UserRecord:
        name = self._validated(Username, username)
        address = self._validated(Email, email)
        hashed = self._validated(Password.create, password)
        user = await self._call(self._dao.create_user(name.value, address.value, hashed.value))
        return await self._remember(user)

    async def ban_user(
        self,
        user_id: int,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        return await self._remember(
            await self._call(self._dao.ban_user(uid.value, reason, expires_at))
        )

    async def unban_user(self, user_id: int) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        return await self._remember(await self._call(self._dao.unban_user(uid.value)))

    async def update_profile_picture(self, user_id: int, avatar: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        return await self._remember(
            await self._call(self._dao.update_profile_picture(uid.value, avatar.strip()))
        )

    async def update_profile_banner(self, user_id: int, banner: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        return await self._remember(
            await self._call(self._dao.update_profile_banner(uid.value, banner.strip()))
        )

    async def update_bio(self, user_id: int, description: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        bio = self._validated(Description, description)
        return await self._remember(await self._call(self._dao.update_bio(uid.value, bio.value)))

    async def update_username(self, user_id: int, username: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        name = self._validated(Username, username)
        return await self._remember(
            await self._call(self._dao.update_username(uid.value, name.value))
        )

    async def update_email(self, user_id: int, email: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        address = self._validated(Email, email)
        return await self._remember(
            await self._call(self._dao.update_email(uid.value, address.value))
        )

    async def update_password(self, user_id: int, password: str) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        hashed = self._validated(Password.create, password)
        return await self._remember(
            await self._call(self._dao.update_password(uid.value, hashed.value))
        )

    async def update_stream_token(self, user_id: int) -> UserRecord | None:
        uid = self._validated(UserId, user_id)
        return await self._remember(await self._call(self._dao.update_stream_token(uid.value)))

    async def _remember(self, user: User | None) -> UserRecord | None:
        if user is None:
            return None
        record = UserRecord.model_validate(user)
        try:
            await self._cache.upsert_user(record)
        except DaoError as exc:
            logger.warning("user cache write failed user_id=%s: %s", record.id, exc.message)
        return record

import logging

from pydantic import ValidationError

from identity_api.cache.client import CacheClient
from identity_api.schemas import UserRecord

logger = logging.getLogger(__name__)


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


def email_key(email: str) -> str:
    return f"user:email:{email.lower()}"


class UserCacheDAO:
    """Read-through cache entries for users.

    ``user:{id}`` holds the JSON record, ``user:email:{email}`` the id as a
    plain string. Both expire after ``ttl_seconds``.
    """

    def __init__(self, cache: CacheClient, ttl_seconds: int = 3600) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    async def find_by_id(self, user_id: int) -> UserRecord | None:
        data = await self._cache.get_json(user_key(user_id))
        if data is None:
            return None
        try:
            return UserRecord.model_validate(data)
        except ValidationError:
            logger.warning("stale user cache entry dropped user_id=%s", user_id)
            await self._cache.delete(user_key(user_id))
            return None

    async def find_by_email(self, email: str) -> UserRecord | None:
        raw_id = await self._cache.get_raw(email_key(email))
        if raw_id is None:
            return None
        try:
            user_id = int(raw_id)
        except ValueError:
            await self._cache.delete(email_key(email))
            return None
        user = await self.find_by_id(user_id)
        if user is None or user.email != email.lower():
            return None
        return user

    async def upsert_user(self, user: UserRecord) -> bool:
        """Write ``user`` unless the cached copy is identical.

        When the email changed, the old email key is dropped before the new
        entries are written. Returns True iff anything was written.
        """
        cached = await self.find_by_id(user.id)
        if cached == user:
            return False
        if cached is not None and cached.email != user.email:
            await self._cache.delete(email_key(cached.email))
        await self._cache.set_json(user_key(user.id), user.model_dump(mode="json"), self._ttl)
        await self._cache.set_raw(email_key(user.email), str(user.id), self._ttl)
        return True

    async def invalidate_user(self, user_id: int, email: str | None = None) -> None:
        keys = [user_key(user_id)]
        if email:
            keys.append(email_key(email))
        await self._cache.delete(*keys)

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from identity_api.cache.client import CacheClient
from identity_api.cache.users import UserCacheDAO
from identity_api.dao.permissions import PermissionsDAO
from identity_api.dao.refresh_tokens import RefreshTokenDAO
from identity_api.dao.roles import RolesDAO
from identity_api.dao.sessions import SessionDAO
from identity_api.dao.user_roles import UserRolesDAO
from identity_api.dao.users import UserDAO
from identity_api.db.engine import build_engine
from identity_api.db.session import build_sessionmaker
from identity_api.repositories.authorization import AuthorizationRepository
from identity_api.repositories.users import UserRepository
from identity_api.settings import Settings
from identity_api.tokens import RefreshTokenHasher

logger = logging.getLogger(__name__)


@dataclass
class DaoFactory:
    """Every DAO and repository of one process, sharing one engine and cache."""

    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    cache: CacheClient
    users: UserDAO
    user_cache: UserCacheDAO
    roles: RolesDAO
    permissions: PermissionsDAO
    user_roles: UserRolesDAO
    sessions: SessionDAO
    refresh_tokens: RefreshTokenDAO
    user_repository: UserRepository
    authorization: AuthorizationRepository

    async def close(self) -> None:
        await self.cache.close()
        await self.engine.dispose()
        logger.info("dao factory closed")


def build_dao_factory(
    settings: Settings,
    engine: AsyncEngine | None = None,
    cache: CacheClient | None = None,
) -> DaoFactory:
    engine = engine or build_engine(settings)
    cache = cache or CacheClient.from_url(settings.redis_url)
    sessionmaker = build_sessionmaker(engine)

    users = UserDAO(sessionmaker)
    user_cache = UserCacheDAO(cache, ttl_seconds=settings.user_cache_ttl_seconds)
    user_roles = UserRolesDAO(sessionmaker)
    return DaoFactory(
        engine=engine,
        sessionmaker=sessionmaker,
        cache=cache,
        users=users,
        user_cache=user_cache,
        roles=RolesDAO(sessionmaker),
        permissions=PermissionsDAO(sessionmaker),
        user_roles=user_roles,
        sessions=SessionDAO(sessionmaker, default_ttl_seconds=settings.session_ttl_seconds),
        refresh_tokens=RefreshTokenDAO(
            sessionmaker,
            RefreshTokenHasher(settings.refresh_token_secret),
            history_limit=settings.token_history_limit,
            token_ttl_seconds=settings.refresh_token_ttl_seconds,
        ),
        user_repository=UserRepository(users, user_cache),
        authorization=AuthorizationRepository(user_roles),
    )

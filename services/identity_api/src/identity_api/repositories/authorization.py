import logging

from identity_api.dao.user_roles import UserRolesDAO
from identity_api.domain import PermissionId, PermissionName, RoleId, RoleName, StreamerId, UserId
from identity_api.errors import RepositoryPermissionError
from identity_api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class AuthorizationRepository(BaseRepository):
    def __init__(self, dao: UserRolesDAO) -> None:
        self._dao = dao

    def _context(self, context: int | None) -> int | None:
        if context is None:
            return None
        return self._validated(StreamerId, context).value

    def _role(self, role: int | str) -> int | str:
        if isinstance(role, str):
            return self._validated(RoleName, role).value
        return self._validated(RoleId, role).value

    def _permission(self, permission: int | str) -> int | str:
        if isinstance(permission, str):
            return self._validated(PermissionName, permission).value
        return self._validated(PermissionId, permission).value

    async def assign_role(self, user_id: int, role: int | str, context: int | None = None) -> bool:
        uid = self._validated(UserId, user_id)
        return await self._call(
            self._dao.assign_role(uid.value, self._role(role), self._context(context))
        )

    async def revoke_role(self, user_id: int, role: int | str, context: int | None = None) -> bool:
        uid = self._validated(UserId, user_id)
        return await self._call(
            self._dao.revoke_role(uid.value, self._role(role), self._context(context))
        )

    async def list_role_names(self, user_id: int, context: int | None = None) -> list[str]:
        uid = self._validated(UserId, user_id)
        roles = await self._call(self._dao.list_roles(uid.value, self._context(context)))
        return [r.name for r in roles]

    async def list_permission_names(self, user_id: int, context: int | None = None) -> list[str]:
        uid = self._validated(UserId, user_id)
        permissions = await self._call(
            self._dao.list_permissions(uid.value, self._context(context))
        )
        return [p.name for p in permissions]

    async def has_permission(
        self,
        user_id: int,
        permission: int | str,
        context: int | None = None,
    ) -> bool:
        uid = self._validated(UserId, user_id)
        return await self._call(
            self._dao.has_permission(uid.value, self._permission(permission), self._context(context))
        )

    async def require_permission(
        self,
        user_id: int,
        permission: int | str,
        context: int | None = None,
    ) -> None:
        """Raise ``RepositoryPermissionError`` unless the user holds ``permission``."""
        if not await self.has_permission(user_id, permission, context):
            logger.info(
                "permission denied user_id=%s permission=%s context=%s",
                user_id,
                permission,
                context,
            )
            raise RepositoryPermissionError(
                "permission denied",
                {"user_id": user_id, "permission": permission, "context": context},
            )

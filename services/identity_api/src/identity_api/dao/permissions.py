import logging

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.dao.base import BaseDAO
from identity_api.models import Permission, RolePermission
from identity_api.refs import PermissionById, PermissionByName, PermissionRef

logger = logging.getLogger(__name__)


async def resolve_permission(session: AsyncSession, ref: PermissionRef) -> Permission | None:
    if isinstance(ref, PermissionById):
        return await session.get(Permission, ref.permission_id)
    result = await session.execute(select(Permission).where(Permission.name == ref.name))
    return result.scalar_one_or_none()


class PermissionsDAO(BaseDAO):
    async def create_permission(self, permission_name: str) -> Permission:
        permission = Permission(name=permission_name.strip().upper())
        async with self._session() as session:
            session.add(permission)
            await session.commit()
        logger.info("permission created name=%s id=%s", permission.name, permission.id)
        return permission

    async def get_permission_by_id(self, permission_id: int) -> Permission | None:
        async with self._session() as session:
            return await resolve_permission(session, PermissionById(permission_id))

    async def get_permission_by_name(self, permission_name: str) -> Permission | None:
        async with self._session() as session:
            return await resolve_permission(session, PermissionByName(permission_name))

    async def get_all_permissions(self) -> list[Permission] | None:
        async with self._session() as session:
            result = await session.execute(select(Permission).order_by(Permission.id))
            permissions = list(result.scalars().all())
        return permissions or None

    async def delete_permission_by_id(self, permission_id: int) -> bool:
        return await self._delete(PermissionById(permission_id))

    async def delete_permission_by_name(self, permission_name: str) -> bool:
        return await self._delete(PermissionByName(permission_name))

    async def _delete(self, ref: PermissionRef) -> bool:
        # granted permissions stay, same rule as roles
        async with self._session() as session:
            permission = await resolve_permission(session, ref)
            if permission is None:
                return False
            in_use = await session.scalar(
                select(exists().where(RolePermission.permission_id == permission.id))
            )
            if in_use:
                logger.info("permission delete refused name=%s: still granted", permission.name)
                return False
            await session.delete(permission)
            await session.commit()
        logger.info("permission deleted name=%s", permission.name)
        return True

import logging

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.dao.base import BaseDAO, map_db_error
from identity_api.dao.permissions import resolve_permission
from identity_api.errors import DaoUniqueViolationError
from identity_api.models import Permission, Role, RolePermission
from identity_api.refs import PermissionById, RoleById, RoleByName, RoleRef

logger = logging.getLogger(__name__)


async def resolve_role(session: AsyncSession, ref: RoleRef) -> Role | None:
    if isinstance(ref, RoleById):
        return await session.get(Role, ref.role_id)
    result = await session.execute(select(Role).where(Role.name == ref.name))
    return result.scalar_one_or_none()


class RolesDAO(BaseDAO):
    async def create_role(self, role_name: str) -> Role:
        """Create a role; a duplicate name raises ``DaoUniqueViolationError``."""
        role = Role(name=role_name.strip().upper())
        async with self._session() as session:
            session.add(role)
            await session.commit()
        logger.info("role created name=%s id=%s", role.name, role.id)
        return role

    async def get_role_by_id(self, role_id: int) -> Role | None:
        async with self._session() as session:
            return await resolve_role(session, RoleById(role_id))

    async def get_role_by_name(self, role_name: str) -> Role | None:
        async with self._session() as session:
            return await resolve_role(session, RoleByName(role_name))

    async def get_all_roles(self) -> list[Role] | None:
        async with self._session() as session:
            result = await session.execute(select(Role).order_by(Role.id))
            roles = list(result.scalars().all())
        return roles or None

    async def delete_role_by_id(self, role_id: int) -> bool:
        return await self._delete(RoleById(role_id))

    async def delete_role_by_name(self, role_name: str) -> bool:
        return await self._delete(RoleByName(role_name))

    async def _delete(self, ref: RoleRef) -> bool:
        async with self._session() as session:
            role = await resolve_role(session, ref)
            if role is None:
                return False
            in_use = await session.scalar(
                select(exists().where(RolePermission.role_id == role.id))
            )
            if in_use:
                logger.info("role delete refused name=%s: permissions still assigned", role.name)
                return False
            await session.delete(role)
            await session.commit()
        logger.info("role deleted name=%s", role.name)
        return True

    async def assign_permission_to_role(self, role_id: int, permission_id: int) -> bool:
        async with self._session() as session:
            role = await resolve_role(session, RoleById(role_id))
            permission = await resolve_permission(session, PermissionById(permission_id))
            if role is None or permission is None:
                return False
            key = (role.id, permission.id)
            if await session.get(RolePermission, key) is not None:
                return True
            session.add(RolePermission(role_id=key[0], permission_id=key[1]))
            try:
                await session.commit()
            except IntegrityError as exc:
                err = map_db_error(exc)
                if isinstance(err, DaoUniqueViolationError):
                    await session.rollback()
                    if await session.get(RolePermission, key) is not None:
                        return True
                raise err from exc
        logger.info("permission %s granted to role %s", permission.name, role.name)
        return True

    async def revoke_permission_from_role(self, role_id: int, permission_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(RolePermission).where(
                    RolePermission.role_id == role_id,
                    RolePermission.permission_id == permission_id,
                )
            )
            await session.commit()
        return result.rowcount > 0

    async def get_permissions_by_role_id(self, role_id: int) -> list[Permission]:
        return await self._permissions_of(RoleById(role_id))

    async def get_permissions_by_role_name(self, role_name: str) -> list[Permission]:
        return await self._permissions_of(RoleByName(role_name))

    async def _permissions_of(self, ref: RoleRef) -> list[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .order_by(Permission.id)
        )
        if isinstance(ref, RoleById):
            stmt = stmt.where(Role.id == ref.role_id)
        else:
            stmt = stmt.where(Role.name == ref.name)
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

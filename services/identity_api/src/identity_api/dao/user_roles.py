import logging

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError

from identity_api.dao.base import BaseDAO, map_db_error
from identity_api.dao.roles import resolve_role
from identity_api.errors import DaoUniqueViolationError
from identity_api.models import Permission, Role, RolePermission, UserRole
from identity_api.refs import PermissionById, permission_ref, role_ref

logger = logging.getLogger(__name__)


def _scope(context: int | None):
    if context is None:
        return UserRole.streamer_id.is_(None)
    return UserRole.streamer_id == context


async def _assigned(session, user_id: int, role_id: int, context: int | None) -> bool:
    found = await session.scalar(
        select(
            exists().where(
                UserRole.user_id == user_id,
                UserRole.role_id == role_id,
                _scope(context),
            )
        )
    )
    return bool(found)


class UserRolesDAO(BaseDAO):
    async def assign_role(
        self,
        user_id: int,
        role: int | str,
        context: int | None = None,
    ) -> bool:
        ref = role_ref(role)
        async with self._session() as session:
            resolved = await resolve_role(session, ref)
            if resolved is None:
                return False
            role_id = resolved.id
            if await _assigned(session, user_id, role_id, context):
                return True
            session.add(UserRole(user_id=user_id, role_id=role_id, streamer_id=context))
            try:
                await session.commit()
            except IntegrityError as exc:
                err = map_db_error(exc)
                if isinstance(err, DaoUniqueViolationError):
                    await session.rollback()
                    # lost a race against an identical assignment
                    if await _assigned(session, user_id, role_id, context):
                        return True
                raise err from exc
        logger.info(
            "role assigned user_id=%s role=%s context=%s", user_id, resolved.name, context
        )
        return True

    async def revoke_role(
        self,
        user_id: int,
        role: int | str,
        context: int | None = None,
    ) -> bool:
        ref = role_ref(role)
        async with self._session() as session:
            resolved = await resolve_role(session, ref)
            if resolved is None:
                return False
            result = await session.execute(
                delete(UserRole).where(
                    UserRole.user_id == user_id,
                    UserRole.role_id == resolved.id,
                    _scope(context),
                )
            )
            await session.commit()
        revoked = result.rowcount > 0
        if revoked:
            logger.info(
                "role revoked user_id=%s role=%s context=%s", user_id, resolved.name, context
            )
        return revoked

    async def list_roles(self, user_id: int, context: int | None = None) -> list[Role]:
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, _scope(context))
            .distinct()
            .order_by(Role.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_permissions(
        self, user_id: int, context: int | None = None
    ) -> list[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.user_id == user_id, _scope(context))
            .distinct()
            .order_by(Permission.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def has_permission(
        self,
        user_id: int,
        permission: int | str,
        context: int | None = None,
    ) -> bool:
        ref = permission_ref(permission)
        conditions = [
            RolePermission.role_id == UserRole.role_id,
            UserRole.user_id == user_id,
            _scope(context),
        ]
        if isinstance(ref, PermissionById):
            conditions.append(RolePermission.permission_id == ref.permission_id)
        else:
            conditions.append(RolePermission.permission_id == Permission.id)
            conditions.append(Permission.name == ref.name)
        async with self._session() as session:
            found = await session.scalar(select(exists().where(*conditions)))
        return bool(found)

import logging

from identity_api.dao.permissions import PermissionsDAO
from identity_api.dao.roles import RolesDAO
from identity_api.errors import DaoUniqueViolationError
from identity_api.models import Permission, Role

logger = logging.getLogger(__name__)


async def ensure_default_roles(
    roles: RolesDAO,
    permissions: PermissionsDAO,
    default_roles: dict[str, list[str]],
) -> None:
    """Create the configured roles and grant them their permissions.

    Safe to run on every start: existing rows and links are left as they are.
    """
    for role_name, permission_names in default_roles.items():
        role = await _ensure_role(roles, role_name)
        for permission_name in permission_names:
            permission = await _ensure_permission(permissions, permission_name)
            await roles.assign_permission_to_role(role.id, permission.id)
        logger.info("default role ensured name=%s permissions=%d", role.name, len(permission_names))


async def _ensure_role(roles: RolesDAO, name: str) -> Role:
    role = await roles.get_role_by_name(name)
    if role is not None:
        return role
    try:
        return await roles.create_role(name)
    except DaoUniqueViolationError:
        # another instance seeded it first
        role = await roles.get_role_by_name(name)
        if role is None:
            raise
        return role


async def _ensure_permission(permissions: PermissionsDAO, name: str) -> Permission:
    permission = await permissions.get_permission_by_name(name)
    if permission is not None:
        return permission
    try:
        return await permissions.create_permission(name)
    except DaoUniqueViolationError:
        permission = await permissions.get_permission_by_name(name)
        if permission is None:
            raise
        return permission

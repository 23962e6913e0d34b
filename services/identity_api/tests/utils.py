from datetime import timedelta

from sqlalchemy import update

from identity_api.models import User
from identity_api.tokens import build_expiry, generate_raw_token, utcnow


async def create_user(user_dao, name: str = "alice") -> User:
    return await user_dao.create_user(name, f"{name}@mail.com", "not-a-real-hash")


async def create_session(session_dao, user_id: int, expires_in: int = 3600):
    return await session_dao.create_session(
        user_id,
        build_expiry(expires_in),
        ip_address="203.0.113.7",
        user_agent="pytest",
    )


async def issue_token(refresh_token_dao, session, expires_in: int = 3600):
    raw = generate_raw_token()
    token = await refresh_token_dao.issue_refresh_token(
        session.id, session.user_id, build_expiry(expires_in), raw
    )
    return raw, token


def in_the_past(seconds: int = 60):
    return utcnow() - timedelta(seconds=seconds)


async def set_columns(sessionmaker, model, row_id, **values) -> None:
    async with sessionmaker() as db:
        await db.execute(update(model).where(model.id == row_id).values(**values))
        await db.commit()


async def create_role_with_permissions(roles_dao, permissions_dao, role_name: str, *names: str):
    role = await roles_dao.create_role(role_name)
    for name in names:
        permission = await permissions_dao.get_permission_by_name(name)
        if permission is None:
            permission = await permissions_dao.create_permission(name)
        await roles_dao.assign_permission_to_role(role.id, permission.id)
    return role

import os
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

import pytest
from sqlalchemy import text

os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")

from identity_api.dao.permissions import PermissionsDAO
from identity_api.dao.refresh_tokens import RefreshTokenDAO
from identity_api.dao.roles import RolesDAO
from identity_api.dao.sessions import SessionDAO
from identity_api.dao.user_roles import UserRolesDAO
from identity_api.dao.users import UserDAO
from identity_api.db.base import Base
from identity_api.db.engine import build_engine
from identity_api.db.session import build_sessionmaker
from identity_api import models  # noqa: F401
from identity_api.settings import Settings
from identity_api.tokens import RefreshTokenHasher

TEST_SECRET = "test-refresh-secret"


@pytest.fixture(scope="session")
def db_url(tmp_path_factory) -> str:
    url = os.environ.get("TEST_DATABASE_URL")
    if url:
        return url
    path = tmp_path_factory.mktemp("identity") / "identity.db"
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture(scope="session")
def settings(db_url: str) -> Settings:
    return Settings(DATABASE_URL=db_url, REFRESH_TOKEN_SECRET=TEST_SECRET)


@pytest.fixture()
async def engine(settings: Settings):
    engine = build_engine(settings)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        await engine.dispose()
        pytest.skip("Database not available")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture()
def user_dao(sessionmaker) -> UserDAO:
    return UserDAO(sessionmaker)


@pytest.fixture()
def roles_dao(sessionmaker) -> RolesDAO:
    return RolesDAO(sessionmaker)


@pytest.fixture()
def permissions_dao(sessionmaker) -> PermissionsDAO:
    return PermissionsDAO(sessionmaker)


@pytest.fixture()
def user_roles_dao(sessionmaker) -> UserRolesDAO:
    return UserRolesDAO(sessionmaker)


@pytest.fixture()
def session_dao(sessionmaker) -> SessionDAO:
    return SessionDAO(sessionmaker)


@pytest.fixture()
def hasher() -> RefreshTokenHasher:
    return RefreshTokenHasher(TEST_SECRET)


@pytest.fixture()
def refresh_token_dao(sessionmaker, hasher) -> RefreshTokenDAO:
    return RefreshTokenDAO(sessionmaker, hasher)

import os
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")

from identity_api import settings as settings_module

settings_module.get_settings.cache_clear()

from identity_api.cache.client import CacheClient
from identity_api.main import app as fastapi_app
from identity_api.main import get_factory


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the cache layer."""

    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = fail

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        return None


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache(fake_redis) -> CacheClient:
    return CacheClient(fake_redis)


@pytest.fixture()
def broken_cache() -> CacheClient:
    return CacheClient(FakeRedis(fail=True))


@pytest.fixture()
def factory_override():
    def _install(factory):
        fastapi_app.dependency_overrides[get_factory] = lambda: factory

    yield _install
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
async def async_client():
    import httpx

    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

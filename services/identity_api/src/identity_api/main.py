import logging

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text

from identity_api.bootstrap import ensure_default_roles
from identity_api.dao.base import BaseDAO
from identity_api.errors import DaoError, RepositoryError
from identity_api.factory import DaoFactory, build_dao_factory
from identity_api.logging_config import configure_logging
from identity_api.request_id import (
    REQUEST_ID_HEADER,
    bind_request_id,
    reset_request_id,
    resolve_request_id,
)
from identity_api.schemas import HealthOut
from identity_api.settings import get_settings

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Identity API")


class _PingDAO(BaseDAO):
    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))


def get_factory(request: Request) -> DaoFactory:
    return request.app.state.factory


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    token = bind_request_id(request_id)
    try:
        if settings.app_env.lower() == "prod":
            if request.url.path in ("/docs", "/openapi.json"):
                return Response(status_code=404)
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed path=%s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    factory = build_dao_factory(settings)
    app.state.factory = factory
    if settings.default_roles:
        await ensure_default_roles(factory.roles, factory.permissions, settings.default_roles)


@app.on_event("shutdown")
async def shutdown_event():
    factory = getattr(app.state, "factory", None)
    if factory is not None:
        await factory.close()


@app.get("/health", response_model=HealthOut)
def health():
    return {"status": "ok"}


@app.get("/internal/db-ping", response_model=HealthOut)
async def db_ping(factory: DaoFactory = Depends(get_factory)):
    try:
        await _PingDAO(factory.sessionmaker).ping()
    except DaoError as exc:
        raise RepositoryError.from_dao_error(exc) from exc
    return {"status": "ok"}


@app.get("/internal/cache-ping", response_model=HealthOut)
async def cache_ping(factory: DaoFactory = Depends(get_factory)):
    try:
        await factory.cache.ping()
    except DaoError as exc:
        raise RepositoryError.from_dao_error(exc) from exc
    return {"status": "ok"}

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_api.errors import (
    DaoConnectionError,
    DaoConstraintError,
    DaoError,
    DaoUniqueViolationError,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
CONSTRAINT_VIOLATIONS = {"23503", "23514", "23502"}
CONNECTION_EXCEPTION_CLASS = "08"

_SQLITE_UNIQUE = "UNIQUE constraint failed"
_SQLITE_CONSTRAINTS = (
    "FOREIGN KEY constraint failed",
    "CHECK constraint failed",
    "NOT NULL constraint failed",
)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return str(code) if code else None


def _constraint_name(exc: DBAPIError) -> str:
    orig = exc.orig
    for attr in ("constraint_name", "constraint"):
        name = getattr(orig, attr, None)
        if name:
            return str(name)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return str(name)
    message = str(orig)
    if _SQLITE_UNIQUE in message:
        return message.split(_SQLITE_UNIQUE, 1)[1].strip(" :") or "unknown"
    return "unknown"


def map_db_error(exc: BaseException) -> DaoError:
    """Classify a raw store failure into the DAO error taxonomy."""
    if isinstance(exc, DaoError):
        return exc

    if isinstance(exc, DBAPIError):
        code = _sqlstate(exc)
        message = str(exc.orig)
        if code == UNIQUE_VIOLATION or _SQLITE_UNIQUE in message:
            return DaoUniqueViolationError(_constraint_name(exc), exc)
        if code in CONSTRAINT_VIOLATIONS or any(m in message for m in _SQLITE_CONSTRAINTS):
            return DaoConstraintError(message or "Constraint violation", exc)
        if isinstance(exc, IntegrityError):
            return DaoConstraintError(message or "Integrity violation", exc)
        if (
            exc.connection_invalidated
            or (code or "").startswith(CONNECTION_EXCEPTION_CLASS)
            or isinstance(exc, (OperationalError, InterfaceError))
        ):
            return DaoConnectionError(message or "Connection failure", exc)
        return DaoError(f"Database error: {message}", exc)

    if isinstance(exc, SQLAlchemyError):
        return DaoError(f"Database error: {exc}", exc)

    if isinstance(exc, OSError):
        return DaoConnectionError(str(exc) or "Connection failure", exc)

    return DaoError(str(exc) or "Unexpected DAO error", exc)


class BaseDAO:
    """Runs each DAO operation inside its own ``AsyncSession``."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker
        logger.debug("initializing %s", type(self).__name__)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as session:
                yield session
        except DaoError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            err = map_db_error(exc)
            logger.warning("%s failed: %s", type(self).__name__, err.message)
            raise err from exc

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from identity_api.errors import (
    DaoError,
    RepositoryError,
    RepositoryValidationError,
    ValueValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseRepository:
    async def _call(self, dao_call: Awaitable[T]) -> T:
        """Await a DAO call, translating store failures into ``RepositoryError``."""
        try:
            return await dao_call
        except DaoError as exc:
            err = RepositoryError.from_dao_error(exc)
            logger.error("repository error %s", err.to_dict())
            raise err from exc

    @staticmethod
    def _validated(factory: Callable[[object], T], value: object) -> T:
        try:
            return factory(value)
        except ValueValidationError as exc:
            raise RepositoryValidationError(
                str(exc), {"field": exc.field, "reason": exc.reason}
            ) from exc

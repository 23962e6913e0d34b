from typing import Any


class DaoError(Exception):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class DaoConnectionError(DaoError):
    def __init__(
        self,
        message: str = "Database connection failed",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)


class DaoConstraintError(DaoError):
    pass


class DaoInvalidTokenError(DaoConstraintError):
    pass


class DaoUniqueViolationError(DaoError):
    def __init__(self, constraint: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Unique constraint violated: {constraint}", cause)
        self.constraint = constraint


class DaoInvalidArgumentError(DaoError):
    pass


class DaoCacheConnectionError(DaoError):
    def __init__(
        self,
        message: str = "Redis/Valkey connection failed",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)


class DaoCacheAuthenticationError(DaoError):
    def __init__(
        self,
        message: str = "Redis/Valkey authentication error",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)


class ValueValidationError(ValueError):
    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"invalid {field}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class RepositoryError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        retryable: bool = False,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }

    @classmethod
    def from_dao_error(cls, err: DaoError) -> "RepositoryError":
        if isinstance(err, DaoUniqueViolationError):
            return RepositoryConflictError(err.message, {"constraint": err.constraint})
        if isinstance(err, (DaoConstraintError, DaoInvalidArgumentError)):
            return RepositoryValidationError(err.message)
        if isinstance(
            err,
            (DaoConnectionError, DaoCacheConnectionError, DaoCacheAuthenticationError),
        ):
            return RepositoryError(err.message, status_code=503, retryable=True)
        return RepositoryError(err.message)


class RepositoryNotFoundError(RepositoryError):
    def __init__(self, entity: str, entity_id: Any = None) -> None:
        suffix = f": {entity_id}" if entity_id is not None else ""
        super().__init__(
            f"{entity} not found{suffix}",
            status_code=404,
            details={"entity": entity, "id": entity_id},
        )


class RepositoryConflictError(RepositoryError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message, status_code=409, details=details)


class RepositoryValidationError(RepositoryError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message, status_code=400, details=details)


class RepositoryPermissionError(RepositoryError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message, status_code=403, details=details)

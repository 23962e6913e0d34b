import re
from dataclasses import dataclass

import bcrypt
from email_validator import EmailNotValidError, validate_email

from .errors import ValueValidationError

_WORD_RE = re.compile(r"^[A-Za-z0-9_]+$")


def _positive_id(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueValidationError(field, value, "must be an integer")
    if value <= 0:
        raise ValueValidationError(field, value, "must be positive")
    return value


@dataclass(frozen=True)
class UserId:
    value: int

    def __post_init__(self) -> None:
        _positive_id("user_id", self.value)


@dataclass(frozen=True)
class StreamerId:
    value: int

    def __post_init__(self) -> None:
        _positive_id("streamer_id", self.value)


@dataclass(frozen=True)
class RoleId:
    value: int

    def __post_init__(self) -> None:
        _positive_id("role_id", self.value)


@dataclass(frozen=True)
class PermissionId:
    value: int

    def __post_init__(self) -> None:
        _positive_id("permission_id", self.value)


@dataclass(frozen=True)
class Username:
    MIN_LENGTH = 3
    MAX_LENGTH = 25

    value: str

    def __post_init__(self) -> None:
        trimmed = self.value.strip()
        if len(trimmed) < self.MIN_LENGTH:
            raise ValueValidationError(
                "username", trimmed, f"shorter than {self.MIN_LENGTH} characters"
            )
        if len(trimmed) > self.MAX_LENGTH:
            raise ValueValidationError(
                "username", trimmed, f"longer than {self.MAX_LENGTH} characters"
            )
        if not _WORD_RE.match(trimmed):
            raise ValueValidationError(
                "username", trimmed, "only letters, numbers and underscores are allowed"
            )
        object.__setattr__(self, "value", trimmed)

    @property
    def normalized(self) -> str:
        return self.value.lower()


@dataclass(frozen=True)
class Email:
    value: str

    def __post_init__(self) -> None:
        try:
            result = validate_email(self.value.strip(), check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValueValidationError("email", self.value, str(exc)) from exc
        object.__setattr__(self, "value", result.normalized.lower())


@dataclass(frozen=True)
class Description:
    MIN_LENGTH = 1
    MAX_LENGTH = 160

    value: str

    def __post_init__(self) -> None:
        trimmed = self.value.strip()
        if len(trimmed) < self.MIN_LENGTH:
            raise ValueValidationError("description", trimmed, "must not be empty")
        if len(trimmed) > self.MAX_LENGTH:
            raise ValueValidationError(
                "description", trimmed, f"longer than {self.MAX_LENGTH} characters"
            )
        object.__setattr__(self, "value", trimmed)


@dataclass(frozen=True)
class Password:
    """A bcrypt hash. Build from plain text with ``Password.create``."""

    MIN_LENGTH = 8
    # bcrypt ignores everything past 72 bytes
    MAX_BYTES = 72
    ROUNDS = 12

    value: str

    @classmethod
    def create(cls, raw: str) -> "Password":
        if len(raw) < cls.MIN_LENGTH:
            raise ValueValidationError(
                "password", None, f"shorter than {cls.MIN_LENGTH} characters"
            )
        encoded = raw.encode("utf-8")
        if len(encoded) > cls.MAX_BYTES:
            raise ValueValidationError("password", None, f"longer than {cls.MAX_BYTES} bytes")
        hashed = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=cls.ROUNDS))
        return cls(hashed.decode("utf-8"))

    @classmethod
    def from_hash(cls, hashed: str) -> "Password":
        return cls(hashed)

    def verify(self, raw: str) -> bool:
        try:
            return bcrypt.checkpw(raw.encode("utf-8"), self.value.encode("utf-8"))
        except ValueError:
            return False


def _catalog_name(field: str, value: str) -> str:
    trimmed = value.strip()
    if not trimmed or len(trimmed) > 64:
        raise ValueValidationError(field, value, "must be 1-64 characters")
    if not _WORD_RE.match(trimmed):
        raise ValueValidationError(
            field, value, "only letters, numbers and underscores are allowed"
        )
    return trimmed.upper()


@dataclass(frozen=True)
class RoleName:
    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _catalog_name("role_name", self.value))


@dataclass(frozen=True)
class PermissionName:
    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _catalog_name("permission_name", self.value))

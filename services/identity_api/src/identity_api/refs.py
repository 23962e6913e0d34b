from dataclasses import dataclass
from typing import Union

from .errors import DaoInvalidArgumentError


@dataclass(frozen=True)
class RoleById:
    role_id: int


@dataclass(frozen=True)
class RoleByName:
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip().upper())


@dataclass(frozen=True)
class PermissionById:
    permission_id: int


@dataclass(frozen=True)
class PermissionByName:
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip().upper())


RoleRef = Union[RoleById, RoleByName]
PermissionRef = Union[PermissionById, PermissionByName]


def role_ref(value: object) -> RoleRef:
    if isinstance(value, (RoleById, RoleByName)):
        return value
    # bool is an int subclass, but True is never a role id
    if isinstance(value, int) and not isinstance(value, bool):
        return RoleById(value)
    if isinstance(value, str):
        return RoleByName(value)
    raise DaoInvalidArgumentError(
        f"Invalid role identifier type: {type(value).__name__}"
    )


def permission_ref(value: object) -> PermissionRef:
    if isinstance(value, (PermissionById, PermissionByName)):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return PermissionById(value)
    if isinstance(value, str):
        return PermissionByName(value)
    raise DaoInvalidArgumentError(
        f"Invalid permission identifier type: {type(value).__name__}"
    )

"""Roles and the actors evaluated by the permission engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from expedientes.authz.capabilities import is_valid_bitmask
from expedientes.errors import ValidationError, require_positive_id


class RoleKind(str, Enum):
    """
    Role classification decided when the role is defined.

    Administrators satisfy every check regardless of bitmask. The role name
    plays no part in this decision.
    """

    STANDARD = "standard"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True)
class Role:
    id: int
    name: str
    default_bitmask: int = 0
    kind: RoleKind = RoleKind.STANDARD

    def __post_init__(self) -> None:
        require_positive_id(self.id, "role.id")
        if not is_valid_bitmask(self.default_bitmask):
            raise ValidationError(
                "role.default_bitmask must be an int in [0, 255]",
                role_id=self.id,
                value=self.default_bitmask,
            )

    @property
    def is_administrator(self) -> bool:
        return self.kind is RoleKind.ADMINISTRATOR


@dataclass(frozen=True)
class Actor:
    """
    A user as seen by authorization: identity, home area, role and bitmask.

    ``bitmask`` defaults to the role's default bitmask when omitted.
    """

    id: int
    area_id: int
    role: Role
    bitmask: int | None = None

    def __post_init__(self) -> None:
        require_positive_id(self.id, "actor.id")
        require_positive_id(self.area_id, "actor.area_id")
        if not isinstance(self.role, Role):
            raise ValidationError("actor.role must be a Role", actor_id=self.id)
        if self.bitmask is None:
            object.__setattr__(self, "bitmask", self.role.default_bitmask)
        elif not is_valid_bitmask(self.bitmask):
            raise ValidationError(
                "actor.bitmask must be an int in [0, 255]",
                actor_id=self.id,
                value=self.bitmask,
            )

    @property
    def is_administrator(self) -> bool:
        return self.role.is_administrator

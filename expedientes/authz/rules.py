"""
Contextual rules and their stores.

A contextual rule grants (never revokes) one action on one resource type to
a role inside an area, when a relationship between actor and resource holds:

    OWNER       the actor created the resource
    SAME_AREA   the resource sits in the actor's area
    ASSIGNED    the resource is assigned to the actor
    SUPERVISOR  the actor is responsible for the resource's area

Rules are decoded into ``ContextualRule`` once, at the store boundary; the
permission engine never re-parses raw rule data.

The YAML loader follows the same shape as the rest of the configuration:

    roles:
      - id: 1
        name: Administrador
        kind: administrator
        permissions: 255
      - id: 2
        name: Mesa de Partes
        permissions: [CREATE, EDIT, VIEW, DERIVE]

    rules:
      - role: 2
        area: 3            # omit or null: any area
        resource_type: DOCUMENT
        condition: OWNER
        action: DELETE
        active: true       # inactive rules are skipped
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import threading
from typing import Any, Iterable, Mapping, Protocol

import pydantic
from pydantic import BaseModel, Field, field_validator
import yaml

from expedientes.authz.capabilities import capability_for, normalize_action
from expedientes.authz.roles import Role, RoleKind
from expedientes.errors import RulesConfigError

logger = logging.getLogger(__name__)


# ---- Data structures -----------------------------------------------------------------


class Condition(str, Enum):
    OWNER = "OWNER"
    SAME_AREA = "SAME_AREA"
    ASSIGNED = "ASSIGNED"
    SUPERVISOR = "SUPERVISOR"

    @classmethod
    def parse(cls, value: object) -> Condition:
        if isinstance(value, Condition):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise RulesConfigError(f"unknown rule condition {value!r}") from exc


@dataclass(frozen=True)
class ContextualRule:
    """Decoded rule. ``area_id`` None applies to every area of the role."""

    role_id: int
    area_id: int | None
    resource_type: str
    condition: Condition
    action: str

    @classmethod
    def build(
        cls,
        role_id: int,
        area_id: int | None,
        resource_type: str,
        condition: object,
        action: object,
    ) -> ContextualRule:
        normalized = normalize_action(action)
        if normalized is None:
            raise RulesConfigError(f"unknown rule action {action!r}")
        resource = str(resource_type).strip().upper()
        if not resource:
            raise RulesConfigError("rule resource_type must be non-empty")
        return cls(
            role_id=role_id,
            area_id=area_id,
            resource_type=resource,
            condition=Condition.parse(condition),
            action=normalized,
        )

    @property
    def key(self) -> tuple[int, int | None, str]:
        return (self.role_id, self.area_id, self.resource_type)


class ContextualRuleStore(Protocol):
    """Read-only view of the contextual rules, owned outside the core."""

    def fetch_rule(self, role_id: int, area_id: int, resource_type: str) -> ContextualRule | None:
        ...


# ---- In-memory store -----------------------------------------------------------------


class InMemoryRuleStore:
    """
    Rule store backed by a dict keyed on (role, area, resource type).

    An exact area match wins over a rule declared for any area.
    """

    def __init__(self, rules: Iterable[ContextualRule] = ()) -> None:
        self._lock = threading.Lock()
        self._rules: dict[tuple[int, int | None, str], ContextualRule] = {}
        for rule in rules:
            self.put(rule)

    def put(self, rule: ContextualRule) -> None:
        with self._lock:
            self._rules[rule.key] = rule

    def discard(self, role_id: int, area_id: int | None, resource_type: str) -> None:
        with self._lock:
            self._rules.pop((role_id, area_id, resource_type.upper()), None)

    def fetch_rule(self, role_id: int, area_id: int, resource_type: str) -> ContextualRule | None:
        resource = resource_type.upper()
        with self._lock:
            rule = self._rules.get((role_id, area_id, resource))
            if rule is None:
                rule = self._rules.get((role_id, None, resource))
        return rule

    def __len__(self) -> int:
        return len(self._rules)


# ---- YAML loader ---------------------------------------------------------------------


class RoleEntry(BaseModel):
    id: int = Field(gt=0)
    name: str
    kind: RoleKind = RoleKind.STANDARD
    permissions: int | list[str] = 0

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("role name must be non-empty")
        return value

    def bitmask(self) -> int:
        if isinstance(self.permissions, int):
            return self.permissions
        mask = 0
        for name in self.permissions:
            capability = capability_for(name)
            if capability is None:
                raise RulesConfigError(f"role {self.name!r} references unknown capability {name!r}")
            mask |= capability
        return mask


class RuleEntry(BaseModel):
    role: int = Field(gt=0)
    area: int | None = Field(default=None, gt=0)
    resource_type: str
    condition: str
    action: str
    active: bool = True


class RulesConfigModel(BaseModel):
    roles: list[RoleEntry] = Field(default_factory=list)
    rules: list[RuleEntry] = Field(default_factory=list)


@dataclass(frozen=True)
class RulesConfig:
    """Fully-loaded roles and active contextual rules."""

    roles: Mapping[int, Role]
    rules: tuple[ContextualRule, ...]

    def rule_store(self) -> InMemoryRuleStore:
        return InMemoryRuleStore(self.rules)


def parse_rules_config(raw: Mapping[str, Any]) -> RulesConfig:
    """Validate an already-parsed mapping (see module docstring for the shape)."""

    try:
        model = RulesConfigModel.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise RulesConfigError(f"invalid rules configuration: {exc}") from exc

    roles: dict[int, Role] = {}
    for entry in model.roles:
        if entry.id in roles:
            raise RulesConfigError(f"duplicate role id {entry.id}")
        bitmask = entry.bitmask()
        if not 0 <= bitmask <= 255:
            raise RulesConfigError(f"role {entry.name!r} permissions must be in [0, 255]")
        roles[entry.id] = Role(id=entry.id, name=entry.name, default_bitmask=bitmask, kind=entry.kind)

    rules: dict[tuple[int, int | None, str], ContextualRule] = {}
    for entry in model.rules:
        if entry.role not in roles:
            raise RulesConfigError(f"rule references unknown role {entry.role}")
        if not entry.active:
            logger.debug("Skipping inactive rule role=%s area=%s type=%s", entry.role, entry.area, entry.resource_type)
            continue
        rule = ContextualRule.build(entry.role, entry.area, entry.resource_type, entry.condition, entry.action)
        if rule.key in rules:
            raise RulesConfigError(
                f"more than one active rule for role={rule.role_id} area={rule.area_id} type={rule.resource_type}"
            )
        rules[rule.key] = rule

    return RulesConfig(roles=roles, rules=tuple(rules.values()))


def load_rules_config(path: Path) -> RulesConfig:
    """Load and validate the roles + contextual rules YAML from disk."""

    raw_text = path.read_text(encoding="utf-8")
    raw = yaml.safe_load(raw_text) or {}
    if not isinstance(raw, dict):
        raise RulesConfigError(f"rules configuration must be a mapping: {path}")
    return parse_rules_config(raw)

"""
Permission engine: capability bitmask plus contextual rules.

Answers two questions for an (actor, resource, action) triple:

    has_bit_permission(actor, bit)?
    has_contextual_permission(actor, resource_type, resource_id, action)?

Combination rule, applied to every action: the capability bit OR an
applicable contextual rule grants access. Contextual rules only add
permission; they never take away what the bitmask grants.

Fail-closed: when the rule store, a resource resolver or the responsibility
cache cannot answer, the check denies and logs a degraded-dependency
warning. Ordinary denials are logged at DEBUG so operators can tell
"no access" from "dependency down".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Iterable, Mapping

from expedientes.authz.capabilities import MAX_BITMASK, Capability, capability_for, is_valid_bitmask
from expedientes.authz.roles import Actor
from expedientes.authz.rules import Condition, ContextualRule, ContextualRuleStore
from expedientes.errors import DependencyUnavailable, RuleStoreUnavailable, ValidationError
from expedientes.responsibility.cache import AreaResponsibilityCache

logger = logging.getLogger(__name__)


# ---- Data structures -----------------------------------------------------------------


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"

    def __bool__(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class ResourceSnapshot:
    """Attributes of a resource that contextual conditions look at."""

    # None for a resource that is not registered yet.
    id: int | None
    area_id: int | None
    creator_id: int | None = None
    assignee_id: int | None = None


ResourceResolver = Callable[[int], ResourceSnapshot | None]

DEFAULT_RESPONSIBILITY_SCOPED_TYPES: frozenset[str] = frozenset({"AREA"})


# ---- Engine --------------------------------------------------------------------------


class PermissionEngine:
    """
    Evaluates bitmask and contextual permissions.

    Usage:
        engine = PermissionEngine(rule_store, responsibility_cache)
        engine.register_resolver("DOCUMENT", documents.snapshot)
        allowed = engine.has_contextual_permission(actor, "DOCUMENT", 42, "DERIVE")

    ``responsibility_scoped_types`` lists resource types whose SAME_AREA
    condition is answered from the actor's responsibility areas instead of a
    direct comparison with the actor's home area.
    """

    def __init__(
        self,
        rule_store: ContextualRuleStore,
        responsibility_cache: AreaResponsibilityCache,
        *,
        responsibility_scoped_types: Iterable[str] = DEFAULT_RESPONSIBILITY_SCOPED_TYPES,
        resolvers: Mapping[str, ResourceResolver] | None = None,
    ) -> None:
        self._rule_store = rule_store
        self._cache = responsibility_cache
        self._responsibility_scoped = frozenset(t.upper() for t in responsibility_scoped_types)
        self._resolvers: dict[str, ResourceResolver] = {}
        for resource_type, resolver in (resolvers or {}).items():
            self.register_resolver(resource_type, resolver)

    @property
    def responsibility_cache(self) -> AreaResponsibilityCache:
        return self._cache

    def register_resolver(self, resource_type: str, resolver: ResourceResolver) -> None:
        """Resolver used when a check does not carry its own resource snapshot."""
        self._resolvers[resource_type.upper()] = resolver

    # ---- Bitmask --------------------------------------------------------------------

    def has_bit_permission(self, actor: Actor | None, bit: int, require_all: bool = False) -> bool:
        if not isinstance(actor, Actor):
            return False
        if actor.is_administrator:
            return True
        if not is_valid_bitmask(actor.bitmask):
            return False
        if isinstance(bit, bool) or not isinstance(bit, int) or not 0 < bit <= MAX_BITMASK:
            return False

        if require_all:
            return (actor.bitmask & bit) == bit
        return (actor.bitmask & bit) != 0

    # ---- Contextual -----------------------------------------------------------------

    def has_contextual_permission(
        self,
        actor: Actor | None,
        resource_type: str,
        resource_id: int,
        action: str | Capability,
        resource: ResourceSnapshot | None = None,
    ) -> bool:
        return bool(self.evaluate(actor, resource_type, resource_id, action, resource))

    def evaluate(
        self,
        actor: Actor | None,
        resource_type: str,
        resource_id: int,
        action: str | Capability,
        resource: ResourceSnapshot | None = None,
    ) -> Decision:
        """
        Decide whether ``actor`` may perform ``action`` on a resource.

        Algorithm:
        1. Administrator role kind -> allow.
        2. Unknown action -> deny. Capability bit granted -> allow.
        3. Fetch the rule for (role, area, resource type). None -> deny.
        4. Rule action differs from the requested action -> deny.
        5. Evaluate the rule condition against the resource snapshot.
        """

        if not isinstance(actor, Actor):
            logger.debug("Permission: no actor type=%s id=%s action=%s", resource_type, resource_id, action)
            return Decision.DENY
        if actor.is_administrator:
            return Decision.ALLOW

        capability = capability_for(action)
        if capability is None:
            logger.debug("Permission: unknown action=%r actor=%s", action, actor.id)
            return Decision.DENY
        if self.has_bit_permission(actor, capability):
            return Decision.ALLOW

        resource_type = str(resource_type).upper()
        try:
            rule = self._fetch_rule(actor, resource_type)
            if rule is None:
                logger.debug(
                    "Permission: denied, no rule actor=%s role=%s area=%s type=%s action=%s",
                    actor.id,
                    actor.role.id,
                    actor.area_id,
                    resource_type,
                    capability.name,
                )
                return Decision.DENY
            if rule.action != capability.name:
                logger.debug(
                    "Permission: denied, rule grants %s not %s actor=%s type=%s",
                    rule.action,
                    capability.name,
                    actor.id,
                    resource_type,
                )
                return Decision.DENY

            snapshot = resource if resource is not None else self._resolve(resource_type, resource_id)
            if snapshot is None:
                logger.debug("Permission: denied, no snapshot for type=%s id=%s", resource_type, resource_id)
                return Decision.DENY

            if self._condition_holds(rule, actor, resource_type, snapshot):
                logger.debug(
                    "Permission: allowed by %s rule actor=%s type=%s id=%s action=%s",
                    rule.condition.value,
                    actor.id,
                    resource_type,
                    resource_id,
                    capability.name,
                )
                return Decision.ALLOW
        except DependencyUnavailable as exc:
            logger.warning(
                "Permission: degraded dependency, failing closed actor=%s type=%s id=%s action=%s error=%s",
                actor.id,
                resource_type,
                resource_id,
                capability.name,
                exc,
            )
            return Decision.DENY
        except ValidationError as exc:
            logger.debug("Permission: denied, malformed resource type=%s id=%s error=%s", resource_type, resource_id, exc)
            return Decision.DENY

        logger.debug(
            "Permission: denied, %s condition not met actor=%s type=%s id=%s",
            rule.condition.value,
            actor.id,
            resource_type,
            resource_id,
        )
        return Decision.DENY

    # ---- Convenience checks ---------------------------------------------------------

    def can_delete_document(self, actor: Actor | None, document: ResourceSnapshot) -> bool:
        return self.has_contextual_permission(actor, "DOCUMENT", document.id, Capability.DELETE, document)

    def can_delete_user(self, actor: Actor | None) -> bool:
        """Users are deleted by administrators only."""
        return self.has_bit_permission(actor, Capability.ADMIN)

    def can_delete_area(self, actor: Actor | None) -> bool:
        """Areas are deleted by administrators only."""
        return self.has_bit_permission(actor, Capability.ADMIN)

    # ---- Helpers --------------------------------------------------------------------

    def _fetch_rule(self, actor: Actor, resource_type: str) -> ContextualRule | None:
        try:
            return self._rule_store.fetch_rule(actor.role.id, actor.area_id, resource_type)
        except DependencyUnavailable:
            raise
        except Exception as exc:
            raise RuleStoreUnavailable(
                "contextual rule store failed",
                role_id=actor.role.id,
                area_id=actor.area_id,
                resource_type=resource_type,
            ) from exc

    def _resolve(self, resource_type: str, resource_id: int) -> ResourceSnapshot | None:
        resolver = self._resolvers.get(resource_type)
        if resolver is None:
            return None
        try:
            return resolver(resource_id)
        except DependencyUnavailable:
            raise
        except Exception as exc:
            raise DependencyUnavailable(
                "resource resolver failed",
                resource_type=resource_type,
                resource_id=resource_id,
            ) from exc

    def _condition_holds(
        self,
        rule: ContextualRule,
        actor: Actor,
        resource_type: str,
        resource: ResourceSnapshot,
    ) -> bool:
        condition = rule.condition
        if condition is Condition.OWNER:
            return resource.creator_id is not None and resource.creator_id == actor.id
        if condition is Condition.ASSIGNED:
            return resource.assignee_id is not None and resource.assignee_id == actor.id
        if resource.area_id is None:
            return False
        if condition is Condition.SAME_AREA:
            if resource_type in self._responsibility_scoped:
                return resource.area_id in self._cache.get_areas_for_user(actor.id)
            return resource.area_id == actor.area_id
        if condition is Condition.SUPERVISOR:
            return actor.id in self._cache.get_responsibles_for_area(resource.area_id)
        return False

"""
Authorization: capability bitmask, roles, contextual rules and the engine
that combines them.
"""

from .capabilities import Capability, capability_for, describe_bitmask
from .engine import Decision, PermissionEngine, ResourceSnapshot
from .roles import Actor, Role, RoleKind
from .rules import Condition, ContextualRule, ContextualRuleStore, InMemoryRuleStore, load_rules_config

__all__ = [
    "Actor",
    "Capability",
    "Condition",
    "ContextualRule",
    "ContextualRuleStore",
    "Decision",
    "InMemoryRuleStore",
    "PermissionEngine",
    "ResourceSnapshot",
    "Role",
    "RoleKind",
    "capability_for",
    "describe_bitmask",
    "load_rules_config",
]

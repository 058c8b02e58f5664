"""
The eight capability bits carried by every user's permission bitmask.

A bitmask is an int in [0, 255]; each bit independently grants one
capability. Contextual rules refer to capabilities by name ("EDIT",
"DERIVE", ...), so this module also owns the name <-> bit mapping.
"""

from __future__ import annotations

from enum import IntFlag


class Capability(IntFlag):
    CREATE = 1
    EDIT = 2
    DELETE = 4
    VIEW = 8
    DERIVE = 16
    AUDIT = 32
    EXPORT = 64
    ADMIN = 128


ALL_CAPABILITIES = 255
MAX_BITMASK = ALL_CAPABILITIES

# Declaration order, lowest bit first.
CAPABILITY_NAMES: tuple[str, ...] = tuple(c.name for c in Capability)


def capability_for(action: object) -> Capability | None:
    """
    Map an action name to its capability bit.

    Accepts a ``Capability`` member or its name in any case. Returns None for
    anything else, so callers can deny unknown actions.
    """

    if isinstance(action, Capability):
        return action
    if not isinstance(action, str):
        return None
    try:
        return Capability[action.strip().upper()]
    except KeyError:
        return None


def normalize_action(action: object) -> str | None:
    capability = capability_for(action)
    return capability.name if capability is not None else None


def is_valid_bitmask(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= MAX_BITMASK


def describe_bitmask(bitmask: int) -> list[str]:
    """Names of the capabilities granted by ``bitmask``, lowest bit first."""
    if not is_valid_bitmask(bitmask):
        return []
    return [c.name for c in Capability if bitmask & c]

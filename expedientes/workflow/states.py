"""
Document states and the transition table.

    RECEIVED -> IN_PROGRESS -> DERIVED -> IN_PROGRESS -> ... -> FINALIZED -> ARCHIVED

DERIVED is re-enterable: every derivation moves the document to another
area, and the destination area takes it back to IN_PROGRESS. ARCHIVED is
terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from expedientes.authz.capabilities import Capability
from expedientes.errors import ValidationError


class DocumentState(str, Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    DERIVED = "DERIVED"
    FINALIZED = "FINALIZED"
    ARCHIVED = "ARCHIVED"

    @classmethod
    def parse(cls, value: object) -> DocumentState:
        if isinstance(value, DocumentState):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValidationError(f"unknown document state {value!r}", value=value) from exc

    @property
    def is_terminal(self) -> bool:
        return self is DocumentState.ARCHIVED


INITIAL_STATE = DocumentState.RECEIVED


@dataclass(frozen=True)
class Transition:
    source: DocumentState
    target: DocumentState
    trigger: str

    # Any one of these capabilities (bit or contextual) authorizes the edge.
    required: tuple[Capability, ...]

    # Edges only reachable through a dedicated operation (derive_document).
    dedicated: bool = False


TRANSITIONS: Mapping[tuple[DocumentState, DocumentState], Transition] = {
    (t.source, t.target): t
    for t in (
        Transition(DocumentState.RECEIVED, DocumentState.IN_PROGRESS, "area picks up document", (Capability.EDIT,)),
        Transition(DocumentState.IN_PROGRESS, DocumentState.DERIVED, "derive", (Capability.DERIVE,), dedicated=True),
        Transition(DocumentState.DERIVED, DocumentState.IN_PROGRESS, "destination area accepts", (Capability.EDIT,)),
        Transition(DocumentState.IN_PROGRESS, DocumentState.FINALIZED, "work completed", (Capability.EDIT,)),
        Transition(
            DocumentState.FINALIZED,
            DocumentState.ARCHIVED,
            "closure",
            (Capability.ADMIN, Capability.EXPORT),
        ),
    )
}


def find_transition(source: DocumentState, target: DocumentState) -> Transition | None:
    return TRANSITIONS.get((source, target))


def allowed_targets(source: DocumentState) -> tuple[DocumentState, ...]:
    return tuple(t.target for t in TRANSITIONS.values() if t.source is source)

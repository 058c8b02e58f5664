"""Tests for document states and the transition table."""

import pytest

from expedientes.authz.capabilities import Capability
from expedientes.errors import ValidationError
from expedientes.workflow.states import (
    INITIAL_STATE,
    TRANSITIONS,
    DocumentState,
    allowed_targets,
    find_transition,
)


def test_initial_state_is_received():
    assert INITIAL_STATE is DocumentState.RECEIVED


def test_transition_table_edges():
    assert set(TRANSITIONS) == {
        (DocumentState.RECEIVED, DocumentState.IN_PROGRESS),
        (DocumentState.IN_PROGRESS, DocumentState.DERIVED),
        (DocumentState.DERIVED, DocumentState.IN_PROGRESS),
        (DocumentState.IN_PROGRESS, DocumentState.FINALIZED),
        (DocumentState.FINALIZED, DocumentState.ARCHIVED),
    }


def test_only_derivation_edge_is_dedicated():
    dedicated = [t for t in TRANSITIONS.values() if t.dedicated]
    assert len(dedicated) == 1
    assert dedicated[0].required == (Capability.DERIVE,)


def test_archive_accepts_admin_or_export():
    edge = find_transition(DocumentState.FINALIZED, DocumentState.ARCHIVED)
    assert set(edge.required) == {Capability.ADMIN, Capability.EXPORT}


def test_received_cannot_jump_to_derived():
    assert find_transition(DocumentState.RECEIVED, DocumentState.DERIVED) is None
    assert allowed_targets(DocumentState.RECEIVED) == (DocumentState.IN_PROGRESS,)


def test_archived_is_terminal():
    assert DocumentState.ARCHIVED.is_terminal
    assert allowed_targets(DocumentState.ARCHIVED) == ()


def test_parse_accepts_any_case():
    assert DocumentState.parse("in_progress") is DocumentState.IN_PROGRESS
    assert DocumentState.parse(DocumentState.DERIVED) is DocumentState.DERIVED
    with pytest.raises(ValidationError):
        DocumentState.parse("LOST")

"""
Documents, their append-only histories and the id-keyed store holding them.

Documents are immutable snapshots; a mutation commits a replacement snapshot
together with its history records in one step under the store lock. Parent
links are plain ids resolved through the store, never nested objects.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
import itertools
import threading
from typing import Iterator

from expedientes.authz.engine import ResourceSnapshot
from expedientes.errors import ConcurrentDerivationConflict, DocumentNotFound, ValidationError
from expedientes.workflow.states import DocumentState


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


@dataclass(frozen=True)
class Document:
    id: int
    registration_number: str
    current_area_id: int
    creator_id: int
    state: DocumentState
    updated_at: datetime
    assignee_id: int | None = None
    parent_id: int | None = None
    subject: str = ""
    origin: str = ""
    observations: str = ""
    priority: Priority = Priority.NORMAL

    # Bumped on every committed mutation; used to detect lost updates.
    version: int = 1

    def snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            id=self.id,
            area_id=self.current_area_id,
            creator_id=self.creator_id,
            assignee_id=self.assignee_id,
        )


@dataclass(frozen=True)
class Derivation:
    """One hand-off between areas. ``sequence`` is per document and starts at 1."""

    id: int
    document_id: int
    sequence: int
    from_area_id: int
    to_area_id: int
    actor_id: int
    timestamp: datetime
    comment: str = ""
    urgent: bool = False
    reason: str = ""


@dataclass(frozen=True)
class StatusChange:
    document_id: int
    sequence: int
    from_state: DocumentState | None
    to_state: DocumentState
    actor_id: int
    timestamp: datetime
    observations: str = ""


class DocumentStore:
    """
    In-memory arena of documents keyed by id.

    The store only guarantees atomic commits and append-only histories;
    ordering of mutations on one document is the workflow's job.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[int, Document] = {}
        self._registrations: dict[str, int] = {}
        self._derivations: dict[int, list[Derivation]] = {}
        self._status_changes: dict[int, list[StatusChange]] = {}
        self._document_ids = itertools.count(1)
        self._derivation_ids = itertools.count(1)

    # ---- Ids ------------------------------------------------------------------------

    def next_derivation_id(self) -> int:
        with self._lock:
            return next(self._derivation_ids)

    # ---- Reads ----------------------------------------------------------------------

    def find(self, document_id: int) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def get(self, document_id: int) -> Document:
        document = self.find(document_id)
        if document is None:
            raise DocumentNotFound(f"document {document_id} not found", document_id=document_id)
        return document

    def resource_snapshot(self, document_id: int) -> ResourceSnapshot | None:
        """Resolver handed to the permission engine for the DOCUMENT resource type."""
        document = self.find(document_id)
        return document.snapshot() if document is not None else None

    def derivations(self, document_id: int) -> tuple[Derivation, ...]:
        with self._lock:
            entries = tuple(self._derivations.get(document_id, ()))
        return tuple(sorted(entries, key=lambda d: d.sequence))

    def status_changes(self, document_id: int) -> tuple[StatusChange, ...]:
        with self._lock:
            return tuple(self._status_changes.get(document_id, ()))

    def derivation_count(self, document_id: int) -> int:
        with self._lock:
            return len(self._derivations.get(document_id, ()))

    # ---- Writes ---------------------------------------------------------------------

    def create(self, document: Document, status_change: StatusChange | None = None) -> Document:
        """
        Register a new document and return it with its store-assigned id.

        The ``id`` of ``document`` (and the ``document_id`` of
        ``status_change``) is ignored. An id is only drawn once every check
        has passed, so rejected documents leave no gap in the sequence.
        """

        with self._lock:
            if document.registration_number in self._registrations:
                raise ValidationError(
                    f"registration number {document.registration_number!r} already in use",
                    registration_number=document.registration_number,
                )
            if document.parent_id is not None and document.parent_id not in self._documents:
                raise ValidationError(f"parent document {document.parent_id} not found", parent_id=document.parent_id)
            document = replace(document, id=next(self._document_ids))
            if status_change is not None:
                status_change = replace(status_change, document_id=document.id)
            self._documents[document.id] = document
            self._registrations[document.registration_number] = document.id
            self._derivations[document.id] = []
            self._status_changes[document.id] = [status_change] if status_change is not None else []
        return document

    def commit(
        self,
        document: Document,
        *,
        expected_version: int,
        derivation: Derivation | None = None,
        status_change: StatusChange | None = None,
    ) -> Document:
        """
        Replace a document snapshot and append its history records atomically.

        Raises ``ConcurrentDerivationConflict`` without writing anything when
        the stored version moved since ``expected_version`` was read or the
        derivation does not carry the next sequence number.
        """

        with self._lock:
            current = self._documents.get(document.id)
            if current is None:
                raise DocumentNotFound(f"document {document.id} not found", document_id=document.id)
            if current.version != expected_version:
                raise ConcurrentDerivationConflict(
                    f"document {document.id} changed concurrently",
                    document_id=document.id,
                    expected_version=expected_version,
                    actual_version=current.version,
                )
            history = self._derivations[document.id]
            if derivation is not None:
                last = history[-1].sequence if history else 0
                if derivation.sequence != last + 1:
                    raise ConcurrentDerivationConflict(
                        f"derivation sequence {derivation.sequence} does not follow {last}",
                        document_id=document.id,
                        sequence=derivation.sequence,
                    )
            if document.version != expected_version + 1:
                raise ValidationError("committed document must bump version by one", document_id=document.id)

            self._documents[document.id] = document
            if derivation is not None:
                history.append(derivation)
            if status_change is not None:
                self._status_changes[document.id].append(status_change)
        return document


class DerivationHistory:
    """
    Lazy, finite, restartable view over a document's derivations.

    Nothing is read until iteration starts; each iteration walks the history
    as it stood when that iteration began, in ascending sequence order.
    """

    def __init__(self, store: DocumentStore, document_id: int) -> None:
        self._store = store
        self._document_id = document_id

    @property
    def document_id(self) -> int:
        return self._document_id

    def __iter__(self) -> Iterator[Derivation]:
        yield from self._store.derivations(self._document_id)

    def __len__(self) -> int:
        return self._store.derivation_count(self._document_id)

    def __repr__(self) -> str:
        return f"DerivationHistory(document_id={self._document_id}, length={len(self)})"

"""
Document workflow: the only place documents change.

Each mutating operation on an existing document first checks that the id
is known, then runs under that document's lock in the same order:

    1. load the current snapshot
    2. validate the transition (no I/O)
    3. authorize through the permission engine (may do I/O; fails closed)
    4. commit the new snapshot together with its history records

A failure in steps 1-4 leaves the document and its histories untouched.
Audit events are emitted best effort once the lock is released: SUCCESS
after a commit, DENIED after a failed authorization.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Iterable

from expedientes.audit.events import AuditEvent, AuditOperation, AuditSeverity, AuditStatus
from expedientes.audit.sinks import AuditSink
from expedientes.authz.capabilities import Capability
from expedientes.authz.engine import PermissionEngine, ResourceSnapshot
from expedientes.authz.roles import Actor
from expedientes.errors import InvalidTransition, PermissionDenied, ValidationError, require_positive_id
from expedientes.workflow.documents import (
    DerivationHistory,
    Derivation,
    Document,
    DocumentStore,
    Priority,
    StatusChange,
)
from expedientes.workflow.locks import DocumentLocks
from expedientes.workflow.states import INITIAL_STATE, DocumentState, allowed_targets, find_transition

logger = logging.getLogger(__name__)

DOCUMENT_RESOURCE = "DOCUMENT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentWorkflow:
    def __init__(
        self,
        engine: PermissionEngine,
        audit_sink: AuditSink,
        store: DocumentStore | None = None,
        *,
        locks: DocumentLocks | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._engine = engine
        self._audit = audit_sink
        self._store = store if store is not None else DocumentStore()
        self._locks = locks if locks is not None else DocumentLocks()
        self._now = now
        engine.register_resolver(DOCUMENT_RESOURCE, self._store.resource_snapshot)

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def engine(self) -> PermissionEngine:
        return self._engine

    # ---- Intake ---------------------------------------------------------------------

    def intake_document(
        self,
        actor: Actor,
        registration_number: str,
        area_id: int,
        *,
        subject: str = "",
        origin: str = "",
        priority: Priority | str = Priority.NORMAL,
        parent_id: int | None = None,
        assignee_id: int | None = None,
    ) -> Document:
        """Register a new document in RECEIVED. Requires CREATE."""

        _require_actor(actor)
        require_positive_id(area_id, "area_id")
        registration_number = (registration_number or "").strip()
        if not registration_number:
            raise ValidationError("registration_number is required")
        if parent_id is not None:
            require_positive_id(parent_id, "parent_id")
        if assignee_id is not None:
            require_positive_id(assignee_id, "assignee_id")
        try:
            priority = Priority(priority)
        except ValueError as exc:
            raise ValidationError(f"unknown priority {priority!r}", value=priority) from exc

        try:
            self._authorize(
                actor,
                ResourceSnapshot(id=None, area_id=area_id, creator_id=actor.id, assignee_id=assignee_id),
                (Capability.CREATE,),
                AuditOperation.DOCUMENT_CREATE,
                {"registration_number": registration_number, "area_id": area_id},
            )
        except PermissionDenied as exc:
            self._emit_denial(exc)
            raise

        now = self._now()
        # Ids are assigned by the store on create.
        document = self._store.create(
            Document(
                id=0,
                registration_number=registration_number,
                current_area_id=area_id,
                creator_id=actor.id,
                state=INITIAL_STATE,
                updated_at=now,
                assignee_id=assignee_id,
                parent_id=parent_id,
                subject=subject,
                origin=origin,
                priority=priority,
            ),
            StatusChange(
                document_id=0,
                sequence=1,
                from_state=None,
                to_state=INITIAL_STATE,
                actor_id=actor.id,
                timestamp=now,
                observations="intake",
            ),
        )
        logger.info("Document received id=%s registration=%s area=%s", document.id, registration_number, area_id)
        self._emit(
            AuditEvent(
                operation=AuditOperation.DOCUMENT_CREATE.value,
                status=AuditStatus.SUCCESS,
                actor_id=actor.id,
                timestamp=now,
                metadata={"document_id": document.id, "registration_number": registration_number, "area_id": area_id},
            )
        )
        return document

    # ---- Derivation -----------------------------------------------------------------

    def derive_document(
        self,
        document_id: int,
        to_area: int,
        actor: Actor,
        comment: str = "",
        *,
        urgent: bool = False,
        reason: str = "",
    ) -> Derivation:
        """
        Hand an IN_PROGRESS document over to another area.

        Appends one Derivation, moves the document to ``to_area`` and sets it
        to DERIVED, all in one commit. Nothing changes when any check fails.
        """

        _require_actor(actor)
        require_positive_id(document_id, "document_id")
        require_positive_id(to_area, "to_area")

        # Unknown ids never reach the lock registry.
        self._store.get(document_id)
        try:
            with self._locks.hold(document_id):
                document = self._store.get(document_id)
                if document.state is not DocumentState.IN_PROGRESS:
                    raise InvalidTransition(
                        f"document {document_id} cannot be derived from {document.state.value}",
                        document_id=document_id,
                        state=document.state.value,
                    )
                if to_area == document.current_area_id:
                    raise ValidationError(
                        "destination area must differ from the current area",
                        document_id=document_id,
                        area_id=to_area,
                    )
                self._authorize(
                    actor,
                    document.snapshot(),
                    (Capability.DERIVE,),
                    AuditOperation.DOCUMENT_DERIVE,
                    {"document_id": document_id, "from_area": document.current_area_id, "to_area": to_area},
                )

                now = self._now()
                derivation = Derivation(
                    id=self._store.next_derivation_id(),
                    document_id=document_id,
                    sequence=self._store.derivation_count(document_id) + 1,
                    from_area_id=document.current_area_id,
                    to_area_id=to_area,
                    actor_id=actor.id,
                    timestamp=now,
                    comment=comment,
                    urgent=urgent,
                    reason=reason,
                )
                updated = replace(
                    document,
                    current_area_id=to_area,
                    state=DocumentState.DERIVED,
                    updated_at=now,
                    version=document.version + 1,
                )
                self._store.commit(
                    updated,
                    expected_version=document.version,
                    derivation=derivation,
                    status_change=self._status_change(document, DocumentState.DERIVED, actor, now, comment),
                )
        except PermissionDenied as exc:
            self._emit_denial(exc)
            raise

        logger.info(
            "Document derived id=%s seq=%s from_area=%s to_area=%s actor=%s",
            document_id,
            derivation.sequence,
            derivation.from_area_id,
            derivation.to_area_id,
            actor.id,
        )
        self._emit(
            AuditEvent(
                operation=AuditOperation.DOCUMENT_DERIVE.value,
                status=AuditStatus.SUCCESS,
                actor_id=actor.id,
                timestamp=now,
                metadata={
                    "document_id": document_id,
                    "derivation_id": derivation.id,
                    "sequence": derivation.sequence,
                    "from_area": derivation.from_area_id,
                    "to_area": derivation.to_area_id,
                    "urgent": urgent,
                },
            )
        )
        return derivation

    # ---- Status ---------------------------------------------------------------------

    def update_document_status(
        self,
        document_id: int,
        new_state: DocumentState | str,
        actor: Actor,
        *,
        observations: str = "",
        assignee_id: int | None = None,
    ) -> Document:
        """
        Move a document along one edge of the transition table.

        IN_PROGRESS -> DERIVED is only reachable through ``derive_document``.
        """

        _require_actor(actor)
        require_positive_id(document_id, "document_id")
        target = DocumentState.parse(new_state)
        if assignee_id is not None:
            require_positive_id(assignee_id, "assignee_id")

        self._store.get(document_id)
        try:
            with self._locks.hold(document_id):
                document = self._store.get(document_id)
                transition = find_transition(document.state, target)
                if transition is None:
                    raise InvalidTransition(
                        f"transition {document.state.value} -> {target.value} is not allowed",
                        document_id=document_id,
                        state=document.state.value,
                        requested=target.value,
                        allowed=[s.value for s in allowed_targets(document.state)],
                    )
                if transition.dedicated:
                    raise InvalidTransition(
                        f"transition {document.state.value} -> {target.value} requires derive_document",
                        document_id=document_id,
                        state=document.state.value,
                        requested=target.value,
                    )
                self._authorize(
                    actor,
                    document.snapshot(),
                    transition.required,
                    AuditOperation.DOCUMENT_STATUS_CHANGE,
                    {"document_id": document_id, "from_state": document.state.value, "to_state": target.value},
                )

                now = self._now()
                updated = replace(
                    document,
                    state=target,
                    updated_at=now,
                    observations=observations or document.observations,
                    assignee_id=assignee_id if assignee_id is not None else document.assignee_id,
                    version=document.version + 1,
                )
                self._store.commit(
                    updated,
                    expected_version=document.version,
                    status_change=self._status_change(document, target, actor, now, observations),
                )
        except PermissionDenied as exc:
            self._emit_denial(exc)
            raise

        logger.info(
            "Document status changed id=%s %s -> %s actor=%s",
            document_id,
            document.state.value,
            target.value,
            actor.id,
        )
        self._emit(
            AuditEvent(
                operation=AuditOperation.DOCUMENT_STATUS_CHANGE.value,
                status=AuditStatus.SUCCESS,
                actor_id=actor.id,
                timestamp=now,
                metadata={
                    "document_id": document_id,
                    "from_state": document.state.value,
                    "to_state": target.value,
                    "assignee_id": updated.assignee_id,
                },
            )
        )
        return updated

    # ---- Reads ----------------------------------------------------------------------

    def get_document(self, document_id: int) -> Document:
        return self._store.get(document_id)

    def get_parent(self, document_id: int) -> Document | None:
        document = self._store.get(document_id)
        if document.parent_id is None:
            return None
        return self._store.get(document.parent_id)

    def get_history(self, document_id: int) -> DerivationHistory:
        self._store.get(document_id)
        return DerivationHistory(self._store, document_id)

    def get_status_history(self, document_id: int) -> tuple[StatusChange, ...]:
        self._store.get(document_id)
        return self._store.status_changes(document_id)

    # ---- Helpers --------------------------------------------------------------------

    def _authorize(
        self,
        actor: Actor,
        resource: ResourceSnapshot,
        capabilities: Iterable[Capability],
        operation: AuditOperation,
        metadata: dict[str, Any],
    ) -> None:
        required = tuple(capabilities)
        for capability in required:
            if self._engine.has_contextual_permission(actor, DOCUMENT_RESOURCE, resource.id, capability, resource):
                return

        names = [c.name for c in required]
        logger.info("Unauthorized %s attempt actor=%s document=%s required=%s", operation.value, actor.id, resource.id, names)
        target = f"document {resource.id}" if resource.id is not None else "a new document"
        exc = PermissionDenied(
            f"actor {actor.id} lacks {' or '.join(names)} on {target}",
            actor_id=actor.id,
            document_id=resource.id,
            required=names,
        )
        exc.audit_event = AuditEvent(
            operation=operation.value,
            status=AuditStatus.DENIED,
            actor_id=actor.id,
            timestamp=self._now(),
            metadata={**metadata, "required": names},
            severity=AuditSeverity.WARNING,
        )
        raise exc

    def _emit_denial(self, exc: PermissionDenied) -> None:
        if exc.audit_event is not None:
            self._emit(exc.audit_event)

    def _status_change(
        self,
        document: Document,
        target: DocumentState,
        actor: Actor,
        now: datetime,
        observations: str,
    ) -> StatusChange:
        return StatusChange(
            document_id=document.id,
            sequence=len(self._store.status_changes(document.id)) + 1,
            from_state=document.state,
            to_state=target,
            actor_id=actor.id,
            timestamp=now,
            observations=observations,
        )

    def _emit(self, event: AuditEvent) -> None:
        try:
            self._audit.emit(event)
        except Exception as exc:
            logger.warning(
                "Audit emission failed operation=%s status=%s actor=%s error=%s",
                event.operation,
                event.status.value,
                event.actor_id,
                exc,
            )


def _require_actor(actor: object) -> None:
    if not isinstance(actor, Actor):
        raise ValidationError("actor is required")

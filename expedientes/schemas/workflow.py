from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from expedientes.workflow.documents import Priority
from expedientes.workflow.states import DocumentState


class DerivationOut(BaseModel):
    """One step of a document's traceability timeline."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    sequence: int
    from_area_id: int
    to_area_id: int
    actor_id: int
    timestamp: datetime
    comment: str
    urgent: bool
    reason: str


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    registration_number: str
    current_area_id: int
    creator_id: int
    assignee_id: int | None
    parent_id: int | None
    state: DocumentState
    priority: Priority
    subject: str
    origin: str
    observations: str
    updated_at: datetime

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from expedientes.audit.events import AuditEvent, AuditSeverity, AuditStatus


class AuditEventOut(BaseModel):
    operation: str
    status: AuditStatus
    actor_id: int | None
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
    severity: AuditSeverity = AuditSeverity.INFO

    @classmethod
    def from_event(cls, event: AuditEvent) -> AuditEventOut:
        return cls(
            operation=event.operation,
            status=event.status,
            actor_id=event.actor_id,
            timestamp=event.timestamp,
            metadata=dict(event.metadata),
            severity=event.severity,
        )

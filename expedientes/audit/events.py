"""Audit events emitted by gated workflow mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    DENIED = "DENIED"
    FAILED = "FAILED"


class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditOperation(str, Enum):
    DOCUMENT_CREATE = "DOCUMENT_CREATE"
    DOCUMENT_DERIVE = "DOCUMENT_DERIVE"
    DOCUMENT_STATUS_CHANGE = "DOCUMENT_STATUS_CHANGE"


@dataclass(frozen=True)
class AuditEvent:
    """
    One write-once audit record.

    ``metadata`` holds JSON-friendly values only (ids, state names, flags).
    """

    operation: str
    status: AuditStatus
    actor_id: int | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Mapping[str, Any] = field(default_factory=dict)
    severity: AuditSeverity = AuditSeverity.INFO

    def to_dict(self) -> dict[str, object]:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
            "severity": self.severity.value,
        }

from .events import AuditEvent, AuditOperation, AuditSeverity, AuditStatus
from .sinks import AuditSink, CompositeAuditSink, HttpAuditSink, InMemoryAuditSink, LoggingAuditSink

__all__ = [
    "AuditEvent",
    "AuditOperation",
    "AuditSeverity",
    "AuditStatus",
    "AuditSink",
    "CompositeAuditSink",
    "HttpAuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
]

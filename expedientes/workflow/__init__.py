from .documents import Derivation, DerivationHistory, Document, DocumentStore, Priority, StatusChange
from .service import DocumentWorkflow
from .states import DocumentState

__all__ = [
    "Derivation",
    "DerivationHistory",
    "Document",
    "DocumentState",
    "DocumentStore",
    "DocumentWorkflow",
    "Priority",
    "StatusChange",
]

"""
Error taxonomy shared by the permission engine, the responsibility cache and
the document workflow.

Two families:

* Caller-recoverable errors (``PermissionDenied``, ``InvalidTransition``,
  ``ValidationError``, ``ConcurrentDerivationConflict``). The workflow raises
  them; ``ExpedienteService`` turns them into typed outcomes.
* Dependency errors (``RuleStoreUnavailable``, ``RepositoryUnavailable``).
  These never leave the permission engine as-is; they are logged as degraded
  service and become a deny.
"""

from __future__ import annotations

from typing import Any


class ExpedienteError(Exception):
    """Base class for every error raised by this package."""

    code = "EXPEDIENTE_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


class PermissionDenied(ExpedienteError):
    code = "PERMISSION_DENIED"

    # DENIED audit record for the attempt; the workflow emits it once no lock is held.
    audit_event: Any = None


class InvalidTransition(ExpedienteError):
    code = "INVALID_TRANSITION"


class ValidationError(ExpedienteError):
    code = "VALIDATION_ERROR"


class DocumentNotFound(ValidationError):
    code = "DOCUMENT_NOT_FOUND"


class ConcurrentDerivationConflict(ExpedienteError):
    code = "CONCURRENT_DERIVATION_CONFLICT"


class DependencyUnavailable(ExpedienteError):
    """Infrastructure failure while answering a permission question."""

    code = "DEPENDENCY_UNAVAILABLE"


class RuleStoreUnavailable(DependencyUnavailable):
    code = "RULE_STORE_UNAVAILABLE"


class RepositoryUnavailable(DependencyUnavailable):
    code = "REPOSITORY_UNAVAILABLE"


class RulesConfigError(ValueError):
    """Raised when the contextual rules YAML configuration is invalid."""


def require_positive_id(value: object, field: str) -> int:
    """Return ``value`` when it is a positive int id, else raise ``ValidationError``."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field, value=value)
    return value

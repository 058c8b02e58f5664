"""
Authorization and derivation core for case documents (expedientes).

Use ``build_service()`` for a wired ``ExpedienteService``, or assemble
``PermissionEngine``, ``AreaResponsibilityCache`` and ``DocumentWorkflow``
directly when injecting custom stores.
"""

from .errors import (
    ConcurrentDerivationConflict,
    DocumentNotFound,
    ExpedienteError,
    InvalidTransition,
    PermissionDenied,
    RepositoryUnavailable,
    RuleStoreUnavailable,
    ValidationError,
)
from .service import ExpedienteService, Outcome, build_service

__all__ = [
    "ConcurrentDerivationConflict",
    "DocumentNotFound",
    "ExpedienteError",
    "ExpedienteService",
    "InvalidTransition",
    "Outcome",
    "PermissionDenied",
    "RepositoryUnavailable",
    "RuleStoreUnavailable",
    "ValidationError",
    "build_service",
]

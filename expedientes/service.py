"""
The surface the rest of the system (HTTP layer, CLI, jobs) talks to.

Workflow operations return ``Outcome`` values instead of raising: permission
and transition problems are ordinary results the caller is expected to
handle. Permission questions return a ``Decision``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Generic, Mapping, TypeVar

from expedientes.audit.sinks import AuditSink, CompositeAuditSink, HttpAuditSink, LoggingAuditSink
from expedientes.authz.capabilities import Capability
from expedientes.authz.engine import Decision, PermissionEngine
from expedientes.authz.roles import Actor, Role
from expedientes.authz.rules import ContextualRuleStore, InMemoryRuleStore, load_rules_config
from expedientes.authz.sql_store import SqlRuleStore
from expedientes.db.init_db import init_db
from expedientes.db.session import create_db_engine, create_session_factory
from expedientes.errors import ExpedienteError
from expedientes.logging_config import configure_app_logging
from expedientes.responsibility.cache import AreaResponsibilityCache
from expedientes.responsibility.repository import AreaResponsibilityRepository, InMemoryResponsibilityRepository
from expedientes.responsibility.service import ResponsibilityService
from expedientes.responsibility.sql_repository import SqlResponsibilityRepository
from expedientes.schemas.workflow import DerivationOut, DocumentOut
from expedientes.settings import Settings, get_settings
from expedientes.workflow.documents import Derivation, Document
from expedientes.workflow.service import DocumentWorkflow
from expedientes.workflow.states import DocumentState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: ExpedienteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def _attempt(operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    try:
        return Outcome(value=fn(*args, **kwargs))
    except ExpedienteError as exc:
        logger.debug("%s rejected code=%s message=%s", operation, exc.code, exc.message)
        return Outcome(error=exc)


class ExpedienteService:
    """
    Caller-facing facade over the engine, the workflow and the responsibilities.

    Mutations return an ``Outcome``: a rejected request is an expected result
    and carries its error code. Reads raise instead. ``get_document``,
    ``get_history`` and ``get_timeline`` raise ``DocumentNotFound`` for an
    unknown id, since asking for a document that does not exist is a caller
    bug rather than a business rejection.
    """

    def __init__(
        self,
        engine: PermissionEngine,
        workflow: DocumentWorkflow,
        responsibilities: ResponsibilityService,
        roles: Mapping[int, Role] | None = None,
    ) -> None:
        self._engine = engine
        self._workflow = workflow
        self._responsibilities = responsibilities
        self._roles = dict(roles or {})

    @property
    def engine(self) -> PermissionEngine:
        return self._engine

    @property
    def workflow(self) -> DocumentWorkflow:
        return self._workflow

    @property
    def responsibilities(self) -> ResponsibilityService:
        return self._responsibilities

    @property
    def roles(self) -> Mapping[int, Role]:
        return dict(self._roles)

    def evaluate_permission(
        self,
        actor: Actor,
        resource_type: str,
        resource_id: int,
        action: str | Capability,
    ) -> Decision:
        return self._engine.evaluate(actor, resource_type, resource_id, action)

    def intake_document(self, actor: Actor, registration_number: str, area_id: int, **fields: Any) -> Outcome[Document]:
        return _attempt(
            "intake_document",
            self._workflow.intake_document,
            actor,
            registration_number,
            area_id,
            **fields,
        )

    def derive_document(
        self,
        document_id: int,
        to_area: int,
        actor: Actor,
        comment: str = "",
        *,
        urgent: bool = False,
        reason: str = "",
    ) -> Outcome[Derivation]:
        return _attempt(
            "derive_document",
            self._workflow.derive_document,
            document_id,
            to_area,
            actor,
            comment,
            urgent=urgent,
            reason=reason,
        )

    def update_document_status(
        self,
        document_id: int,
        new_state: DocumentState | str,
        actor: Actor,
        *,
        observations: str = "",
        assignee_id: int | None = None,
    ) -> Outcome[Document]:
        return _attempt(
            "update_document_status",
            self._workflow.update_document_status,
            document_id,
            new_state,
            actor,
            observations=observations,
            assignee_id=assignee_id,
        )

    def get_document(self, document_id: int) -> DocumentOut:
        """Raises ``DocumentNotFound`` for an unknown id."""
        return DocumentOut.model_validate(self._workflow.get_document(document_id))

    def get_history(self, document_id: int) -> list[Derivation]:
        """Derivations in sequence order. Raises ``DocumentNotFound`` for an unknown id."""
        return list(self._workflow.get_history(document_id))

    def get_timeline(self, document_id: int) -> list[DerivationOut]:
        """
        Traceability timeline: derivations in sequence order, serializable.

        Raises ``DocumentNotFound`` for an unknown id.
        """
        return [DerivationOut.model_validate(d) for d in self._workflow.get_history(document_id)]

    def invalidate_area_cache(self, area_id: int | None = None, user_id: int | None = None) -> None:
        self._responsibilities.cache.invalidate(area_id=area_id, user_id=user_id)


# ---- Wiring --------------------------------------------------------------------------


def _build_audit_sink(settings: Settings) -> AuditSink:
    sink: AuditSink = LoggingAuditSink()
    if settings.audit_endpoint:
        sink = CompositeAuditSink([sink, HttpAuditSink(settings.audit_endpoint, settings.audit_timeout_seconds)])
    return sink


def build_service(
    settings: Settings | None = None,
    *,
    audit_sink: AuditSink | None = None,
    clock: Callable[[], float] | None = None,
) -> ExpedienteService:
    """
    Wire the default adapters from settings.

    - ``db_url`` set: rules and responsibilities come from the SQL tables.
    - otherwise: rules come from the YAML file when it exists, and
      responsibilities live in memory.
    """

    settings = settings or get_settings()
    configure_app_logging(settings.log_level)

    roles: Mapping[int, Role] = {}
    rule_store: ContextualRuleStore
    repository: AreaResponsibilityRepository
    if settings.db_url:
        db_engine = create_db_engine(settings.db_url)
        init_db(db_engine)
        session_factory = create_session_factory(db_engine)
        rule_store = SqlRuleStore(session_factory)
        repository = SqlResponsibilityRepository(session_factory)
        logger.info("Using SQL rule store and responsibility repository")
    else:
        rules_path = settings.resolved_rules_config_path()
        if rules_path.exists():
            config = load_rules_config(rules_path)
            roles = config.roles
            rule_store = config.rule_store()
            logger.info("Loaded %d contextual rules from %s", len(config.rules), rules_path)
        else:
            rule_store = InMemoryRuleStore()
            logger.warning("No rules file at %s; contextual rules disabled", rules_path)
        repository = InMemoryResponsibilityRepository()

    cache_kwargs: dict[str, Any] = {"ttl_seconds": settings.responsibility_cache_ttl_seconds}
    if clock is not None:
        cache_kwargs["clock"] = clock
    cache = AreaResponsibilityCache(repository, **cache_kwargs)

    engine = PermissionEngine(rule_store, cache)
    workflow = DocumentWorkflow(engine, audit_sink if audit_sink is not None else _build_audit_sink(settings))
    return ExpedienteService(engine, workflow, ResponsibilityService(repository, cache), roles)

"""
Pytest fixtures for the test suite.

SQL adapter tests use an in-memory SQLite engine; everything else runs on
the in-memory stores with a fake clock so TTL behaviour is deterministic.
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from expedientes.audit.sinks import InMemoryAuditSink
from expedientes.authz.capabilities import Capability
from expedientes.authz.engine import PermissionEngine
from expedientes.authz.roles import Actor, Role, RoleKind
from expedientes.authz.rules import InMemoryRuleStore
from expedientes.responsibility.cache import AreaResponsibilityCache
from expedientes.responsibility.repository import InMemoryResponsibilityRepository
from expedientes.responsibility.service import ResponsibilityService
from expedientes.workflow.service import DocumentWorkflow


TEST_DB_URL = "sqlite:///:memory:"


# ---- Database ------------------------------------------------------------------------


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from expedientes.db.base import Base
    from expedientes.models import security  # noqa: F401  (register tables)

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """Session bound to the test DB; the transaction is rolled back after each test."""
    connection = tables.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection, autoflush=False, class_=Session)()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(tables):
    """Session factory for the SQL-backed stores, bound to the test engine."""
    return sessionmaker(bind=tables, autoflush=False, class_=Session)


# ---- Clock and repositories ----------------------------------------------------------


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingRepository(InMemoryResponsibilityRepository):
    """In-memory repository that counts read calls and can be told to fail."""

    def __init__(self, assignments=()) -> None:
        super().__init__(assignments)
        self.area_reads = 0
        self.user_reads = 0
        self.fail_reads = False
        self.fail_writes = False

    def list(self, area_id):
        self.area_reads += 1
        if self.fail_reads:
            raise ConnectionError("repository down")
        return super().list(area_id)

    def list_for_user(self, user_id):
        self.user_reads += 1
        if self.fail_reads:
            raise ConnectionError("repository down")
        return super().list_for_user(user_id)

    def assign(self, area_id, user_id):
        if self.fail_writes:
            raise ConnectionError("repository down")
        super().assign(area_id, user_id)

    def replace(self, area_id, user_ids):
        if self.fail_writes:
            raise ConnectionError("repository down")
        return super().replace(area_id, user_ids)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return CountingRepository()


@pytest.fixture
def cache(repository, clock):
    return AreaResponsibilityCache(repository, ttl_seconds=300, clock=clock)


@pytest.fixture
def responsibilities(repository, cache):
    return ResponsibilityService(repository, cache)


# ---- Authorization -------------------------------------------------------------------


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def permission_engine(rule_store, cache):
    return PermissionEngine(rule_store, cache)


@pytest.fixture
def roles():
    return {
        "admin": Role(id=1, name="Administrador", default_bitmask=0, kind=RoleKind.ADMINISTRATOR),
        "clerk": Role(
            id=2,
            name="Mesa de Partes",
            default_bitmask=Capability.CREATE | Capability.EDIT | Capability.VIEW | Capability.DERIVE,
        ),
        "head": Role(id=3, name="Responsable de Area", default_bitmask=Capability.EDIT | Capability.VIEW),
        "viewer": Role(id=4, name="Operador", default_bitmask=Capability.VIEW),
    }


@pytest.fixture
def make_actor(roles):
    def _make(user_id: int, role: str = "clerk", area_id: int = 1, bitmask: int | None = None) -> Actor:
        return Actor(id=user_id, area_id=area_id, role=roles[role], bitmask=bitmask)

    return _make


# ---- Workflow ------------------------------------------------------------------------


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def workflow(permission_engine, audit_sink):
    return DocumentWorkflow(permission_engine, audit_sink)

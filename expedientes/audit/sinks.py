"""
Audit sinks.

The workflow calls ``emit`` once per gated mutation attempt and treats it as
best effort: it logs any exception a sink raises and carries on. Sinks do
not retry; retry policy belongs to whatever sits behind them.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Protocol

import requests

from expedientes.audit.events import AuditEvent, AuditSeverity
from expedientes.schemas.audit import AuditEventOut

logger = logging.getLogger(__name__)

_LEVELS = {
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
    AuditSeverity.CRITICAL: logging.CRITICAL,
}


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink:
    """Writes each event as one structured log line on the ``expedientes.audit`` logger."""

    def __init__(self, logger_name: str = "expedientes.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(self, event: AuditEvent) -> None:
        self._logger.log(
            _LEVELS[event.severity],
            "audit operation=%s status=%s actor=%s metadata=%s",
            event.operation,
            event.status.value,
            event.actor_id,
            dict(event.metadata),
        )


class InMemoryAuditSink:
    """Keeps events in a list; handy for tests and local inspection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[AuditEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class HttpAuditSink:
    """
    POSTs each event as JSON to an audit collector.

    Raises on transport errors and non-2xx responses; the workflow logs the
    failure and the mutation still succeeds.
    """

    def __init__(self, endpoint: str, timeout_seconds: float = 5.0, session: requests.Session | None = None) -> None:
        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._session = session

    def emit(self, event: AuditEvent) -> None:
        payload = AuditEventOut.from_event(event).model_dump(mode="json")
        post = self._session.post if self._session is not None else requests.post
        resp = post(self._endpoint, json=payload, timeout=self._timeout)
        resp.raise_for_status()
        logger.debug("Audit event delivered operation=%s status=%s", event.operation, resp.status_code)


class CompositeAuditSink:
    """
    Fans one event out to several sinks.

    A failing sink does not stop delivery to the others; the first failure is
    re-raised once all sinks have been tried.
    """

    def __init__(self, sinks: Iterable[AuditSink]) -> None:
        self._sinks = tuple(sinks)

    def emit(self, event: AuditEvent) -> None:
        first_error: Exception | None = None
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as exc:
                logger.warning("Audit sink %s failed: %s", type(sink).__name__, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

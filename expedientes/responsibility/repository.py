"""
Area <-> user responsibility assignments.

The repository is owned outside the core. Reads go through
``AreaResponsibilityCache``; writes go through ``ResponsibilityService`` so the
cache is invalidated right after each successful mutation.
"""

from __future__ import annotations

import threading
from typing import Iterable, Protocol


class AreaResponsibilityRepository(Protocol):
    def list(self, area_id: int) -> Iterable[int]:
        """User ids responsible for ``area_id``."""
        ...

    def list_for_user(self, user_id: int) -> Iterable[int]:
        """Area ids ``user_id`` is responsible for."""
        ...

    def assign(self, area_id: int, user_id: int) -> None:
        ...

    def remove(self, area_id: int, user_id: int) -> None:
        ...

    def replace(self, area_id: int, user_ids: Iterable[int]) -> Iterable[int]:
        """Replace the responsibles of ``area_id``; return the previous user ids."""
        ...


class InMemoryResponsibilityRepository:
    """Dict-backed repository. Thread-safe; used by tests and single-process setups."""

    def __init__(self, assignments: Iterable[tuple[int, int]] = ()) -> None:
        self._lock = threading.Lock()
        self._by_area: dict[int, set[int]] = {}
        for area_id, user_id in assignments:
            self._by_area.setdefault(area_id, set()).add(user_id)

    def list(self, area_id: int) -> frozenset[int]:
        with self._lock:
            return frozenset(self._by_area.get(area_id, ()))

    def list_for_user(self, user_id: int) -> frozenset[int]:
        with self._lock:
            return frozenset(area for area, users in self._by_area.items() if user_id in users)

    def assign(self, area_id: int, user_id: int) -> None:
        with self._lock:
            self._by_area.setdefault(area_id, set()).add(user_id)

    def remove(self, area_id: int, user_id: int) -> None:
        with self._lock:
            users = self._by_area.get(area_id)
            if users is not None:
                users.discard(user_id)

    def replace(self, area_id: int, user_ids: Iterable[int]) -> frozenset[int]:
        with self._lock:
            previous = frozenset(self._by_area.get(area_id, ()))
            self._by_area[area_id] = set(user_ids)
            return previous

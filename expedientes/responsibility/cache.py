"""
Read-through TTL cache over the area responsibility repository.

Two key spaces share one map and one TTL:

    ("area", area_id) -> user ids responsible for the area
    ("user", user_id) -> area ids the user is responsible for

Staleness contract: a read never returns data older than the TTL unless the
repository write happened after the read began and before ``invalidate`` ran
on this instance. Other processes holding their own cache are only bounded
by the TTL.

Races: each key carries a generation counter bumped by ``invalidate``. A
fetch remembers the generation it started under and stores its result only
if that generation is still current and no later fetch already stored a
value, so a stale or failed read never replaces a fresher one.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Iterable

from expedientes.errors import RepositoryUnavailable, require_positive_id
from expedientes.responsibility.repository import AreaResponsibilityRepository

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300

_AREA = "area"
_USER = "user"

CacheKey = tuple[str, int]


@dataclass(frozen=True)
class _Entry:
    value: frozenset[int]
    fetched_at: float
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int


class AreaResponsibilityCache:
    """
    Cache instance injected into the permission engine and the workflow.

    ``clock`` returns seconds (``time.monotonic`` by default) and can be
    replaced to simulate time in tests.
    """

    def __init__(
        self,
        repository: AreaResponsibilityRepository,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._repository = repository
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, _Entry] = {}
        self._generations: dict[CacheKey, int] = {}
        self._epoch = 0
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def repository(self) -> AreaResponsibilityRepository:
        return self._repository

    # ---- Reads ----------------------------------------------------------------------

    def get_responsibles_for_area(self, area_id: int, force: bool = False) -> frozenset[int]:
        require_positive_id(area_id, "area_id")
        return self._get((_AREA, area_id), self._repository.list, force)

    def get_areas_for_user(self, user_id: int, force: bool = False) -> frozenset[int]:
        require_positive_id(user_id, "user_id")
        return self._get((_USER, user_id), self._repository.list_for_user, force)

    # ---- Invalidation ---------------------------------------------------------------

    def invalidate(self, area_id: int | None = None, user_id: int | None = None) -> None:
        """
        Drop cached entries for the given area and/or user.

        Called with neither argument, flushes the whole cache.
        """

        with self._lock:
            if area_id is None and user_id is None:
                self._entries.clear()
                self._generations.clear()
                self._epoch += 1
                logger.debug("Responsibility cache flushed")
                return
            if area_id is not None:
                self._drop((_AREA, area_id))
            if user_id is not None:
                self._drop((_USER, user_id))
        logger.debug("Responsibility cache invalidated area=%s user=%s", area_id, user_id)

    def invalidate_users(self, user_ids: Iterable[int]) -> None:
        with self._lock:
            for user_id in user_ids:
                self._drop((_USER, user_id))

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

    # ---- Internals ------------------------------------------------------------------

    def _drop(self, key: CacheKey) -> None:
        # Caller holds the lock.
        self._entries.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def _get(
        self,
        key: CacheKey,
        fetch: Callable[[int], Iterable[int]],
        force: bool,
    ) -> frozenset[int]:
        with self._lock:
            now = self._clock()
            if not force:
                entry = self._entries.get(key)
                if entry is not None and now < entry.expires_at:
                    self._hits += 1
                    return entry.value
                if entry is not None:
                    del self._entries[key]
            self._misses += 1
            generation = (self._epoch, self._generations.get(key, 0))
            started_at = now

        kind, ident = key
        try:
            value = frozenset(fetch(ident))
        except Exception as exc:
            logger.warning("Responsibility repository fetch failed %s=%s error=%s", kind, ident, exc)
            raise RepositoryUnavailable(
                "area responsibility repository unavailable",
                key=kind,
                id=ident,
            ) from exc

        with self._lock:
            current = self._entries.get(key)
            if (self._epoch, self._generations.get(key, 0)) != generation:
                logger.debug("Responsibility cache: %s=%s invalidated during fetch, not stored", kind, ident)
            elif current is not None and current.fetched_at > started_at:
                logger.debug("Responsibility cache: %s=%s has a fresher entry, not stored", kind, ident)
            else:
                self._entries[key] = _Entry(value=value, fetched_at=started_at, expires_at=started_at + self._ttl)
        return value

from __future__ import annotations

import logging
from typing import Iterable

from expedientes.errors import DependencyUnavailable, ValidationError, require_positive_id
from expedientes.responsibility.cache import AreaResponsibilityCache
from expedientes.responsibility.repository import AreaResponsibilityRepository

logger = logging.getLogger(__name__)


class ResponsibilityService:
    """
    Write path for area responsibilities.

    Every mutation goes to the repository first; only when it succeeds is the
    cache invalidated, synchronously, for the area key and every user key the
    mutation touched. A failed write leaves the cache untouched.
    """

    def __init__(self, repository: AreaResponsibilityRepository, cache: AreaResponsibilityCache) -> None:
        self._repository = repository
        self._cache = cache

    @property
    def cache(self) -> AreaResponsibilityCache:
        return self._cache

    def assign(self, area_id: int, user_id: int) -> None:
        require_positive_id(area_id, "area_id")
        require_positive_id(user_id, "user_id")
        self._repository.assign(area_id, user_id)
        self._cache.invalidate(area_id=area_id, user_id=user_id)
        logger.info("Responsible assigned area=%s user=%s", area_id, user_id)

    def remove(self, area_id: int, user_id: int) -> None:
        require_positive_id(area_id, "area_id")
        require_positive_id(user_id, "user_id")
        self._repository.remove(area_id, user_id)
        self._cache.invalidate(area_id=area_id, user_id=user_id)
        logger.info("Responsible removed area=%s user=%s", area_id, user_id)

    def replace_area_responsibles(self, area_id: int, user_ids: Iterable[int]) -> frozenset[int]:
        """
        Replace the whole responsible list of an area.

        Both the previous and the new responsibles get their user key
        invalidated, since either side's area set changed.
        """

        require_positive_id(area_id, "area_id")
        if isinstance(user_ids, (str, bytes)):
            raise ValidationError("user_ids must be a collection of ids", area_id=area_id)
        new_ids = frozenset(require_positive_id(u, "user_id") for u in user_ids)

        previous = frozenset(self._repository.replace(area_id, new_ids))
        self._cache.invalidate(area_id=area_id)
        self._cache.invalidate_users(previous | new_ids)
        logger.info(
            "Responsibles replaced area=%s added=%s removed=%s",
            area_id,
            sorted(new_ids - previous),
            sorted(previous - new_ids),
        )
        return new_ids

    def is_user_responsible_for_area(self, area_id: int, user_id: int) -> bool:
        """Fail-closed membership check: an unavailable repository answers False."""
        try:
            return user_id in self._cache.get_responsibles_for_area(area_id)
        except (DependencyUnavailable, ValidationError) as exc:
            logger.warning("Responsibility check failed area=%s user=%s error=%s", area_id, user_id, exc)
            return False

"""Tests for the area responsibility TTL cache."""

import pytest

from expedientes.errors import RepositoryUnavailable, ValidationError
from expedientes.responsibility.cache import AreaResponsibilityCache
from expedientes.responsibility.repository import InMemoryResponsibilityRepository


def test_read_through_then_served_from_cache_until_ttl(cache, repository, clock):
    repository.assign(5, 9)

    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.area_reads == 1

    clock.advance(299)
    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.area_reads == 1

    clock.advance(1)
    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.area_reads == 2


def test_cached_value_survives_repository_change_until_invalidated(cache, repository):
    repository.assign(5, 9)
    cache.get_responsibles_for_area(5)

    repository.assign(5, 10)
    assert cache.get_responsibles_for_area(5) == {9}

    cache.invalidate(area_id=5)
    assert cache.get_responsibles_for_area(5) == {9, 10}


def test_force_bypasses_cached_entry(cache, repository):
    cache.get_responsibles_for_area(5)
    repository.assign(5, 9)
    assert cache.get_responsibles_for_area(5, force=True) == {9}
    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.area_reads == 2


def test_user_key_space_is_independent(cache, repository):
    repository.assign(5, 9)
    repository.assign(6, 9)

    assert cache.get_areas_for_user(9) == {5, 6}
    cache.invalidate(area_id=5)
    cache.get_areas_for_user(9)
    assert repository.user_reads == 1

    cache.invalidate(user_id=9)
    cache.get_areas_for_user(9)
    assert repository.user_reads == 2


def test_invalidate_without_arguments_flushes_everything(cache, repository):
    cache.get_responsibles_for_area(5)
    cache.get_areas_for_user(9)
    assert cache.stats().size == 2

    cache.invalidate()

    assert cache.stats().size == 0
    cache.get_responsibles_for_area(5)
    cache.get_areas_for_user(9)
    assert (repository.area_reads, repository.user_reads) == (2, 2)


def test_invalidate_users_drops_each_user_key(cache, repository):
    for user_id in (9, 10, 11):
        cache.get_areas_for_user(user_id)
    cache.invalidate_users([9, 11])
    for user_id in (9, 10, 11):
        cache.get_areas_for_user(user_id)
    assert repository.user_reads == 5


def test_fetch_failure_raises_and_caches_nothing(cache, repository):
    repository.fail_reads = True
    with pytest.raises(RepositoryUnavailable) as exc_info:
        cache.get_responsibles_for_area(5)
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert cache.stats().size == 0

    repository.fail_reads = False
    repository.assign(5, 9)
    assert cache.get_responsibles_for_area(5) == {9}


def test_failed_refresh_does_not_evict_forced_value(cache, repository, clock):
    repository.assign(5, 9)
    cache.get_responsibles_for_area(5)

    repository.fail_reads = True
    with pytest.raises(RepositoryUnavailable):
        cache.get_responsibles_for_area(5, force=True)

    # The earlier entry was never overwritten by the failed read.
    assert cache.get_responsibles_for_area(5) == {9}


@pytest.mark.parametrize("bad_id", [0, -3, True, "5", None])
def test_invalid_ids_are_rejected(cache, bad_id):
    with pytest.raises(ValidationError):
        cache.get_responsibles_for_area(bad_id)
    with pytest.raises(ValidationError):
        cache.get_areas_for_user(bad_id)


def test_non_positive_ttl_is_rejected(repository):
    with pytest.raises(ValueError):
        AreaResponsibilityCache(repository, ttl_seconds=0)


def test_stats_counts_hits_and_misses(cache):
    cache.get_responsibles_for_area(5)
    cache.get_responsibles_for_area(5)
    cache.get_responsibles_for_area(6)
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.size) == (1, 2, 2)


class _InterleavingRepository(InMemoryResponsibilityRepository):
    """Runs ``hook`` once, in the middle of the next ``list`` call."""

    def __init__(self):
        super().__init__()
        self.hook = None
        self.reads = 0

    def list(self, area_id):
        self.reads += 1
        result = super().list(area_id)
        hook, self.hook = self.hook, None
        if hook is not None:
            hook()
        return result


def test_read_invalidated_mid_fetch_is_not_stored(clock):
    repository = _InterleavingRepository()
    cache = AreaResponsibilityCache(repository, ttl_seconds=300, clock=clock)

    def concurrent_write():
        repository.assign(5, 9)
        cache.invalidate(area_id=5)

    repository.hook = concurrent_write
    # The in-flight read saw the old (empty) list; it is returned but not cached.
    assert cache.get_responsibles_for_area(5) == frozenset()
    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.reads == 2


def test_flush_mid_fetch_prevents_store(clock):
    repository = _InterleavingRepository()
    cache = AreaResponsibilityCache(repository, ttl_seconds=300, clock=clock)
    repository.hook = cache.invalidate

    cache.get_responsibles_for_area(5)
    assert cache.stats().size == 0


def test_slow_read_does_not_overwrite_fresher_entry(clock):
    repository = _InterleavingRepository()
    cache = AreaResponsibilityCache(repository, ttl_seconds=300, clock=clock)

    def fresher_read():
        repository.assign(5, 9)
        clock.advance(10)
        cache.get_responsibles_for_area(5, force=True)

    repository.hook = fresher_read
    assert cache.get_responsibles_for_area(5) == frozenset()

    # The entry stored by the later read is kept, and stays valid for its own TTL.
    clock.advance(295)
    assert cache.get_responsibles_for_area(5) == {9}
    assert repository.reads == 2

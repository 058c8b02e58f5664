"""Tests for the responsibility write path and its cache invalidation."""

import logging

import pytest

from expedientes.errors import ValidationError


def test_assign_is_visible_immediately_despite_cached_empty_set(responsibilities, cache):
    assert cache.get_areas_for_user(9) == frozenset()
    assert cache.get_responsibles_for_area(5) == frozenset()

    responsibilities.assign(5, 9)

    assert 5 in cache.get_areas_for_user(9)
    assert 9 in cache.get_responsibles_for_area(5)


def test_remove_is_visible_immediately(responsibilities, cache, repository):
    repository.assign(5, 9)
    assert cache.get_responsibles_for_area(5) == {9}
    assert cache.get_areas_for_user(9) == {5}

    responsibilities.remove(5, 9)

    assert cache.get_responsibles_for_area(5) == frozenset()
    assert cache.get_areas_for_user(9) == frozenset()


def test_replace_invalidates_previous_and_new_users(responsibilities, cache, repository):
    repository.assign(5, 9)
    repository.assign(5, 10)
    for user_id in (9, 10, 11):
        cache.get_areas_for_user(user_id)
    cache.get_responsibles_for_area(5)

    result = responsibilities.replace_area_responsibles(5, [10, 11])

    assert result == {10, 11}
    assert cache.get_responsibles_for_area(5) == {10, 11}
    assert cache.get_areas_for_user(9) == frozenset()
    assert cache.get_areas_for_user(10) == {5}
    assert cache.get_areas_for_user(11) == {5}


def test_failed_write_leaves_cache_untouched(responsibilities, cache, repository):
    cache.get_responsibles_for_area(5)
    repository.fail_writes = True

    with pytest.raises(ConnectionError):
        responsibilities.assign(5, 9)

    assert cache.stats().size == 1
    assert repository.area_reads == 1


@pytest.mark.parametrize("area_id, user_id", [(0, 9), (5, -1), ("5", 9), (5, None)])
def test_assign_validates_ids(responsibilities, area_id, user_id):
    with pytest.raises(ValidationError):
        responsibilities.assign(area_id, user_id)


def test_replace_rejects_string_input(responsibilities):
    with pytest.raises(ValidationError):
        responsibilities.replace_area_responsibles(5, "9")


def test_is_user_responsible_fails_closed(responsibilities, repository, caplog):
    repository.assign(5, 9)
    assert responsibilities.is_user_responsible_for_area(5, 9)

    responsibilities.cache.invalidate()
    repository.fail_reads = True
    with caplog.at_level(logging.WARNING, logger="expedientes"):
        assert responsibilities.is_user_responsible_for_area(5, 9) is False
    assert "Responsibility check failed" in caplog.text


def test_is_user_responsible_invalid_area_is_false(responsibilities):
    assert responsibilities.is_user_responsible_for_area(0, 9) is False

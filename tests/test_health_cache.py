from __future__ import annotations

from datetime import timedelta

import pytest

from insights.health_cache import HealthCache
from insights.models import SavingsAnalysis


@pytest.fixture
def analysis() -> SavingsAnalysis:
    return SavingsAnalysis(health_score=72, total_potential_savings=1_000, motivational_message="ok")


@pytest.fixture
def cache(clock) -> HealthCache:
    return HealthCache(clock=clock)


def test_empty_cache_misses(cache):
    assert cache.get(1) is None
    assert cache.age is None
    assert cache.last_transaction_id is None


def test_round_trip_within_expiry(cache, clock, analysis):
    cache.set(analysis, 5)
    clock.advance(60 * 59)

    assert cache.get(5) is analysis
    assert cache.last_transaction_id == 5


def test_entry_exactly_one_hour_old_is_still_served(cache, clock, analysis):
    cache.set(analysis, 5)
    clock.advance(3600)

    assert cache.get(5) is analysis


def test_new_transaction_id_clears_the_slot(cache, analysis):
    cache.set(analysis, 5)

    assert cache.get(6) is None
    assert cache.get(5) is None


def test_expired_entry_is_dropped(cache, clock, analysis):
    cache.set(analysis, 5)
    clock.advance(3601)

    assert cache.get(5) is None
    assert cache.age is None


def test_set_replaces_the_single_slot(cache, analysis):
    newer = analysis.model_copy(update={"health_score": 40})
    cache.set(analysis, 5)
    cache.set(newer, 6)

    assert cache.get(5) is None
    cache.set(newer, 6)
    assert cache.get(6) is newer


def test_invalidate(cache, analysis):
    cache.set(analysis, 5)
    cache.invalidate()

    assert cache.get(5) is None


def test_degraded_read_ignores_id_and_age_and_keeps_entry(cache, clock, analysis):
    cache.set(analysis, 5)
    clock.advance(5 * 3600)

    assert cache.get(9, ignore_transaction_id=True) is analysis
    assert cache.get(None, ignore_transaction_id=True) is analysis
    assert cache.last_transaction_id == 5


def test_custom_max_age(clock, analysis):
    cache = HealthCache(max_age=timedelta(minutes=5), clock=clock)
    cache.set(analysis, 1)
    clock.advance(301)

    assert cache.get(1) is None

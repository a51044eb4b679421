import datetime

import pytest

from api.error_utils import ExternalServiceError
from challenge_cache import ChallengeCacheService, profile_fingerprint, round_half_up
from conftest import FIXED_NOW, USER_ID, ScriptedGenerator
from models import CarbonBreakdown, ChallengeCacheEntry

PROFILE = {
    "transport": {"primaryMode": "personal_car", "dailyDistance": "6_15km"},
    "diet": {"mealsPerDay": 3, "meatPercentage": 40},
}


def footprint(total):
    return CarbonBreakdown(transport=total, total=total)


def test_fingerprint_is_stable_under_key_order():
    reordered = {"diet": {"meatPercentage": 40, "mealsPerDay": 3}, "transport": PROFILE["transport"]}
    assert profile_fingerprint(PROFILE, 20) == profile_fingerprint(reordered, 20)


def test_fingerprint_rounds_footprint_half_up():
    assert round_half_up(19.5) == 20
    assert round_half_up(2.5) == 3
    assert profile_fingerprint(PROFILE, 19.5) == profile_fingerprint(PROFILE, 20.4)
    assert profile_fingerprint(PROFILE, 20.4) != profile_fingerprint(PROFILE, 20.5)


def test_second_request_is_served_from_cache(cache_service, generator, clock):
    first = cache_service.get_challenges(USER_ID, PROFILE, footprint(20))
    assert first["fromCache"] is False
    assert first["generated"] is True

    clock.advance(hours=2)
    second = cache_service.get_challenges(USER_ID, PROFILE, footprint(20))

    assert second["fromCache"] is True
    assert second["challenges"] == first["challenges"]
    assert second["cacheAge"] == pytest.approx(7200)
    assert len(generator.calls) == 1


def test_footprint_drift_forces_regeneration(cache_service, generator, clock):
    cache_service.get_challenges(USER_ID, PROFILE, footprint(20))
    clock.advance(days=1)

    result = cache_service.get_challenges(USER_ID, PROFILE, footprint(25))

    assert result["fromCache"] is False
    assert len(generator.calls) == 2


def test_drift_below_rounding_boundary_forces_regeneration(cache_service, generator, clock):
    assert profile_fingerprint(PROFILE, 2.4) == profile_fingerprint(PROFILE, 1.95)
    cache_service.get_challenges(USER_ID, PROFILE, footprint(2.4))
    clock.advance(hours=1)

    result = cache_service.get_challenges(USER_ID, PROFILE, footprint(1.95))

    assert result["fromCache"] is False
    assert len(generator.calls) == 2


def test_expired_entry_forces_regeneration(cache_service, generator, clock):
    cache_service.get_challenges(USER_ID, PROFILE, footprint(20))
    clock.advance(days=14)

    assert cache_service.get_challenges(USER_ID, PROFILE, footprint(20))["fromCache"] is False
    assert len(generator.calls) == 2


def test_profile_change_forces_regeneration(cache_service, generator):
    cache_service.get_challenges(USER_ID, PROFILE, footprint(20))
    changed = {**PROFILE, "lifestyle": {"screenTime": "6plus_hrs"}}

    assert cache_service.get_challenges(USER_ID, changed, footprint(20))["fromCache"] is False


def test_each_condition_alone_invalidates(cache_service):
    fingerprint = profile_fingerprint(PROFILE, 20)
    entry = ChallengeCacheEntry(
        challenges=[],
        fingerprint=fingerprint,
        footprintSnapshot=20,
        generatedAt=FIXED_NOW,
        expiresAt=FIXED_NOW + datetime.timedelta(days=14),
    )
    now = FIXED_NOW + datetime.timedelta(days=1)

    assert cache_service.stale_reasons(entry, fingerprint, 20, now) == []
    assert cache_service.stale_reasons(entry, fingerprint, 26, now) == ["footprintDrift"]
    assert cache_service.stale_reasons(entry, "other", 20, now) == ["profileChanged"]
    assert cache_service.stale_reasons(entry, fingerprint, 20, now + datetime.timedelta(days=14)) == ["expired"]
    # drift is measured against the current footprint
    assert cache_service.stale_reasons(entry, fingerprint, 25, now) == []
    assert cache_service.stale_reasons(entry, fingerprint, 17, now) == []
    assert cache_service.stale_reasons(entry, fingerprint, 16, now) == ["footprintDrift"]


def test_generation_failure_serves_fallback_without_caching(repository, clock):
    failing = ScriptedGenerator(error=ExternalServiceError("timeout"))
    service = ChallengeCacheService(repository, failing, clock=clock)

    result = service.get_challenges(USER_ID, PROFILE, footprint(20))

    assert result["fromCache"] is False
    assert result["fallback"] is True
    assert [c["name"] for c in result["challenges"]] == [
        "Carbon Footprint Awareness Week",
        "Plant-Based Meal Challenge",
        "Energy Saver Challenge",
    ]
    assert repository.caches == {}


def test_storage_failure_never_raises(cache_service, repository):
    repository.fail.update({"get_challenge_cache", "save_challenge_cache"})

    result = cache_service.get_challenges(USER_ID, PROFILE, footprint(20))

    assert result["challenges"]
    assert result["fromCache"] is False


def test_refresh_bypasses_valid_cache(cache_service, generator):
    cache_service.get_challenges(USER_ID, PROFILE, footprint(20))

    result = cache_service.refresh_challenges(USER_ID, PROFILE, footprint(20))

    assert result["fromCache"] is False
    assert len(generator.calls) == 2


def test_recent_logs_are_passed_to_generator(cache_service, generator, repository):
    repository.daily_logs[USER_ID] = {
        f"2025-03-{d:02d}": {"date": f"2025-03-{d:02d}", "calculatedDailyCarbonFootprint": d} for d in range(1, 10)
    }

    cache_service.get_challenges(USER_ID, PROFILE, footprint(20))

    recent = generator.calls[0]["recent_logs"]
    assert [log["date"] for log in recent] == [f"2025-03-{d:02d}" for d in range(9, 2, -1)]


def test_api_usage_stats(cache_service):
    cache_service.get_challenges("a", PROFILE, footprint(20))
    cache_service.refresh_challenges("a", PROFILE, footprint(20))
    cache_service.get_challenges("b", PROFILE, footprint(20))

    assert cache_service.get_api_usage_stats() == {
        "totalUsers": 2,
        "totalApiCalls": 3,
        "averageCallsPerUser": 1.5,
    }

import pytest

from api.cache_utils import get_gamification_cache_key
from api.error_utils import RequestValidationError
from conftest import USER_ID, FakeRedis
from gamification_ledger import GamificationLedger


def test_read_unknown_user_is_zero_state_without_writing(ledger, repository):
    profile = ledger.read(USER_ID)

    assert profile.ecoPoints == 0
    assert profile.level == 1
    assert profile.badges == []
    assert USER_ID not in repository.gamification


def test_level_is_derived_from_points(ledger):
    ledger.apply_delta(USER_ID, 250, ["first_log"])

    profile = ledger.read(USER_ID)
    assert profile.ecoPoints == 250
    assert profile.level == 3
    assert profile.model_dump()["level"] == 3


def test_negative_delta_is_rejected(ledger, repository):
    ledger.apply_delta(USER_ID, 10)

    with pytest.raises(RequestValidationError):
        ledger.apply_delta(USER_ID, -5)

    assert repository.gamification[USER_ID]["ecoPoints"] == 10


def test_badges_have_set_semantics(ledger):
    ledger.apply_delta(USER_ID, 0, ["Plant Pioneer", "Plant Pioneer"])
    ledger.apply_delta(USER_ID, 0, ["Plant Pioneer"])

    assert ledger.read(USER_ID).badges == ["Plant Pioneer"]


def test_read_through_cache_is_invalidated_by_delta(ledger, fake_redis):
    key = get_gamification_cache_key(USER_ID)

    ledger.read(USER_ID)
    assert key in fake_redis.store

    ledger.apply_delta(USER_ID, 15)
    assert key not in fake_redis.store
    assert ledger.read(USER_ID).ecoPoints == 15


def test_redis_outage_falls_back_to_storage(repository):
    ledger = GamificationLedger(repository, FakeRedis(broken=True))

    ledger.apply_delta(USER_ID, 40)

    assert ledger.read(USER_ID).ecoPoints == 40

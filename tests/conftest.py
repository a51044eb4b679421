"""Shared fixtures: an in-memory stand-in for FirestoreRepository, a dict-backed
Redis double, a scripted challenge generator and a controllable clock."""

import copy
import datetime

import pytest
import redis

from activity_service import ActivityService
from api.error_utils import StorageWriteError
from challenge_cache import ChallengeCacheService
from challenge_engine import ChallengeProgressEngine
from extensions import EngineServices
from gamification_ledger import GamificationLedger
from models import ChallengeDefinition, GamificationProfile

USER_ID = "user-123"
FIXED_NOW = datetime.datetime(2025, 3, 10, 9, 0, tzinfo=datetime.timezone.utc)
TODAY = datetime.date(2025, 3, 10)


class Clock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += datetime.timedelta(**kwargs)


class InMemoryRepository:
    """Mirrors FirestoreRepository's contract over plain dicts.

    Method names listed in `fail` raise StorageWriteError when called.
    """

    def __init__(self):
        self.daily_logs = {}
        self.gamification = {}
        self.enrollments = {}
        self.challenges = {}
        self.caches = {}
        self.onboarding = {}
        self.baselines = {}
        self.fail = set()

    def _check(self, name):
        if name in self.fail:
            raise StorageWriteError(f"{name} failed")

    def healthcheck(self):
        self._check("healthcheck")

    # --- Daily logs ---

    def save_daily_log(self, user_id, record):
        self._check("save_daily_log")
        logs = self.daily_logs.setdefault(user_id, {})
        logs.setdefault(record.date, {}).update(record.model_dump(mode="json", exclude_none=True))

    def get_daily_log(self, user_id, log_date):
        log = self.daily_logs.get(user_id, {}).get(log_date)
        return copy.deepcopy(log) if log else None

    def get_recent_daily_logs(self, user_id, limit=7):
        logs = self.daily_logs.get(user_id, {})
        return [copy.deepcopy(logs[d]) for d in sorted(logs, reverse=True)[:limit]]

    def get_daily_logs_between(self, user_id, start, end):
        logs = self.daily_logs.get(user_id, {})
        return [copy.deepcopy(logs[d]) for d in sorted(logs, reverse=True) if start <= d <= end]

    def list_daily_log_dates(self, user_id):
        return sorted(self.daily_logs.get(user_id, {}))

    # --- Onboarding ---

    def get_onboarding_profile(self, user_id):
        return self.onboarding.get(user_id)

    def get_carbon_baseline(self, user_id):
        return self.baselines.get(user_id)

    # --- Gamification ---

    def get_gamification(self, user_id):
        doc = self.gamification.get(user_id)
        return copy.deepcopy(doc) if doc is not None else None

    def apply_ledger_delta(self, user_id, points, badges):
        self._check("apply_ledger_delta")
        doc = self.gamification.setdefault(user_id, {})
        doc["ecoPoints"] = doc.get("ecoPoints", 0) + points
        existing = doc.setdefault("badges", [])
        existing.extend(b for b in badges if b not in existing)

    def update_gamification_fields(self, user_id, fields):
        self.gamification.setdefault(user_id, {}).update(fields)

    def commit_gamification_updates(self, updates):
        for user_id, fields in updates.items():
            self.update_gamification_fields(user_id, fields)

    def run_streak_update(self, user_id, compute):
        self._check("run_streak_update")
        before = GamificationProfile.model_validate(self.gamification.get(user_id) or {})
        transition = compute(before)
        if transition.changed:
            self.update_gamification_fields(user_id, transition.profile_fields())
            self.apply_ledger_delta(user_id, transition.pointsAwarded, transition.badgesAwarded)
        return before, transition

    def iter_active_streaks(self):
        for user_id, doc in list(self.gamification.items()):
            if doc.get("dailyLogStreak", 0) > 0:
                yield user_id, GamificationProfile.model_validate(doc)

    # --- Challenges ---

    def get_challenge(self, challenge_id):
        return copy.deepcopy(self.challenges.get(challenge_id))

    def save_challenge(self, definition):
        self.challenges[definition.challengeId] = definition.model_dump(mode="json")

    def get_enrollment(self, user_id, challenge_id):
        return copy.deepcopy(self.enrollments.get(user_id, {}).get(challenge_id))

    def create_enrollment(self, user_id, enrollment):
        enrollments = self.enrollments.setdefault(user_id, {})
        if enrollment.challengeId in enrollments:
            return False
        enrollments[enrollment.challengeId] = enrollment.to_document()
        return True

    def delete_enrollment(self, user_id, challenge_id):
        self.enrollments.get(user_id, {}).pop(challenge_id, None)

    def list_enrollments(self, user_id, completed=None):
        docs = self.enrollments.get(user_id, {}).values()
        return [copy.deepcopy(d) for d in docs if completed is None or d.get("isCompleted", False) == completed]

    def commit_enrollment_updates(self, user_id, updates):
        self._check("commit_enrollment_updates")
        for challenge_id, fields in updates.items():
            self.enrollments[user_id][challenge_id].update(fields)

    def credit_enrollment_reward(self, user_id, challenge_id, points, badge):
        self._check("credit_enrollment_reward")
        data = self.enrollments.get(user_id, {}).get(challenge_id)
        if not data or not data.get("isCompleted") or data.get("rewardCredited"):
            return False
        self.apply_ledger_delta(user_id, points, [badge] if badge else [])
        doc = self.gamification[user_id]
        doc["totalChallengesCompleted"] = doc.get("totalChallengesCompleted", 0) + 1
        data["rewardCredited"] = True
        return True

    # --- Cache ---

    def get_challenge_cache(self, user_id):
        self._check("get_challenge_cache")
        return copy.deepcopy(self.caches.get(user_id))

    def save_challenge_cache(self, user_id, entry):
        self._check("save_challenge_cache")
        previous = self.caches.get(user_id, {}).get("apiCallCount", 0)
        data = entry.model_dump()
        data["apiCallCount"] = previous + 1
        self.caches[user_id] = data

    def list_challenge_cache_entries(self):
        return [copy.deepcopy(d) for d in self.caches.values()]


class FakeRedis:
    def __init__(self, broken=False):
        self.store = {}
        self.broken = broken

    def _guard(self):
        if self.broken:
            raise redis.exceptions.ConnectionError("redis is down")

    def get(self, key):
        self._guard()
        return self.store.get(key)

    def set(self, key, value):
        self._guard()
        self.store[key] = str(value)

    def setex(self, key, ttl, value):
        self._guard()
        self.store[key] = value

    def delete(self, key):
        self._guard()
        self.store.pop(key, None)

    def ping(self):
        self._guard()
        return True


class ScriptedGenerator:
    """Returns a fixed challenge list, or raises `error`, and counts calls."""

    def __init__(self, challenges=None, error=None):
        self.challenges = challenges if challenges is not None else [sample_personalized_challenge()]
        self.error = error
        self.calls = []

    def generate_personalized_challenges(self, profile, recent_logs, footprint, now):
        self.calls.append({"profile": profile, "recent_logs": recent_logs, "footprint": footprint, "now": now})
        if self.error:
            raise self.error
        return copy.deepcopy(self.challenges)


def sample_personalized_challenge(name="Bike Week"):
    return {
        "challengeId": f"personalized_1_{name}",
        "name": name,
        "description": "Cycle to work",
        "type": "transport",
        "duration": 7,
        "pointsAwarded": 25,
        "criteria": {"mode": "cycling"},
        "isPersonalized": True,
    }


def add_challenge(repository, challenge_id="meat_free_monday", **overrides):
    data = {
        "challengeId": challenge_id,
        "name": "Meat-Free Monday",
        "description": "Go vegan for a day",
        "type": "diet",
        "criteria": {"dietType": "vegan"},
        "duration": 1,
        "pointsAwarded": 20,
        "badgeAwarded": "Meat-Free Master",
    }
    data.update(overrides)
    repository.save_challenge(ChallengeDefinition.model_validate(data))
    return data


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(repository, fake_redis):
    return GamificationLedger(repository, fake_redis)


@pytest.fixture
def engine(repository, ledger, clock):
    return ChallengeProgressEngine(repository, ledger, clock=clock)


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def cache_service(repository, generator, clock):
    return ChallengeCacheService(repository, generator, clock=clock)


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def activity(repository, ledger, engine, cache_service, clock, dispatched):
    return ActivityService(
        repository,
        ledger,
        engine,
        cache_service,
        clock=clock,
        today=lambda: TODAY,
        reconcile_dispatcher=dispatched.append,
    )


@pytest.fixture
def services(repository, ledger, engine, cache_service, activity):
    return EngineServices(repository, ledger, engine, cache_service, activity)

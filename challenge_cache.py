"""
Per-user cache of AI-generated personalized challenge sets.

A cached set is served only while it is unexpired, was generated for the same
profile fingerprint, and the user's footprint has not drifted more than
DRIFT_TOLERANCE away from the one it was generated for. Otherwise the set is
regenerated; if generation fails the static fallback set is served instead.
Drift is measured relative to the current footprint.
"""

import datetime
import hashlib
import json
import logging
import math
from typing import Callable, Optional

from pydantic import ValidationError

from gemini_service import get_fallback_challenges
from models import CarbonBreakdown, ChallengeCacheEntry
from timezone_utils import get_utc_now

logger = logging.getLogger(__name__)

CACHE_TTL = datetime.timedelta(days=14)
DRIFT_TOLERANCE = 0.2
RECENT_LOG_LIMIT = 7
PROFILE_SECTIONS = ("transport", "diet", "electricity", "lifestyle")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def profile_fingerprint(profile: Optional[dict], footprint_total: float) -> str:
    profile = profile or {}
    canonical = {section: profile.get(section) for section in PROFILE_SECTIONS}
    canonical["carbonFootprint"] = round_half_up(footprint_total)
    payload = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class ChallengeCacheService:

    def __init__(
        self,
        repository,
        generator,
        clock: Callable[[], datetime.datetime] = get_utc_now,
        ttl: datetime.timedelta = CACHE_TTL,
        drift_tolerance: float = DRIFT_TOLERANCE,
    ):
        self.repository = repository
        self.generator = generator
        self.clock = clock
        self.ttl = ttl
        self.drift_tolerance = drift_tolerance

    def stale_reasons(self, entry: ChallengeCacheEntry, fingerprint: str, footprint_total: float, now: datetime.datetime) -> list:
        """Why an entry cannot be served; empty when it is a valid hit."""
        reasons = []
        if now >= _as_utc(entry.expiresAt):
            reasons.append("expired")
        if entry.fingerprint != fingerprint:
            reasons.append("profileChanged")
        if abs(entry.footprintSnapshot - footprint_total) > footprint_total * self.drift_tolerance:
            reasons.append("footprintDrift")
        return reasons

    def get_challenges(self, user_id: str, profile: Optional[dict], footprint: CarbonBreakdown) -> dict:
        """Never raises; the worst case is the static fallback set."""
        now = self.clock()
        fingerprint = profile_fingerprint(profile, footprint.total)

        try:
            cached = self.repository.get_challenge_cache(user_id)
        except Exception as e:
            logger.error(f"Failed to read challenge cache for {user_id}: {e}", exc_info=True)
            cached = None

        if cached:
            try:
                entry = ChallengeCacheEntry.model_validate(cached)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed challenge cache entry for {user_id}: {e}")
            else:
                reasons = self.stale_reasons(entry, fingerprint, footprint.total, now)
                if not reasons:
                    logger.info(f"Using cached personalized challenges for {user_id}")
                    return {
                        'challenges': entry.challenges,
                        'fromCache': True,
                        'cacheAge': (now - _as_utc(entry.generatedAt)).total_seconds(),
                    }
                logger.info(f"Challenge cache invalidated for {user_id}: {reasons}")

        return self._generate_and_cache(user_id, profile, footprint, fingerprint, now)

    def refresh_challenges(self, user_id: str, profile: Optional[dict], footprint: CarbonBreakdown) -> dict:
        now = self.clock()
        return self._generate_and_cache(user_id, profile, footprint, profile_fingerprint(profile, footprint.total), now)

    def _generate_and_cache(self, user_id, profile, footprint: CarbonBreakdown, fingerprint: str, now) -> dict:
        try:
            recent_logs = self.repository.get_recent_daily_logs(user_id, RECENT_LOG_LIMIT)
            challenges = self.generator.generate_personalized_challenges(profile, recent_logs, footprint, now)
        except Exception as e:
            logger.error(f"Challenge generation failed for {user_id}, serving fallback set: {e}")
            return {'challenges': get_fallback_challenges(now), 'fromCache': False, 'fallback': True}

        entry = ChallengeCacheEntry(
            challenges=challenges,
            fingerprint=fingerprint,
            footprintSnapshot=footprint.total,
            generatedAt=now,
            expiresAt=now + self.ttl,
        )
        try:
            self.repository.save_challenge_cache(user_id, entry)
        except Exception as e:
            logger.error(f"Failed to cache personalized challenges for {user_id}: {e}", exc_info=True)

        logger.info(f"Generated {len(challenges)} personalized challenges for {user_id}")
        return {'challenges': challenges, 'fromCache': False, 'generated': True}

    def get_api_usage_stats(self) -> dict:
        entries = self.repository.list_challenge_cache_entries()
        total_calls = sum(entry.get('apiCallCount') or 0 for entry in entries)
        return {
            'totalUsers': len(entries),
            'totalApiCalls': total_calls,
            'averageCallsPerUser': total_calls / len(entries) if entries else 0,
        }

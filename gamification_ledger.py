"""
Per-user points, level and badges.

Points only ever grow through additive deltas and badges only through set
union, so callers never read-modify-write the ledger themselves.
"""

import logging
from typing import Iterable

from api.cache_utils import cache_gamification, get_cached_gamification, invalidate_gamification_cache
from api.error_utils import RequestValidationError
from models import GamificationProfile

logger = logging.getLogger(__name__)


class GamificationLedger:

    def __init__(self, repository, redis_client=None):
        self.repository = repository
        self.redis_client = redis_client

    def apply_delta(self, user_id: str, points: int = 0, badges: Iterable[str] = ()) -> None:
        if points < 0:
            raise RequestValidationError("Ledger deltas must not be negative", details={"points": points})
        badges = [badge for badge in dict.fromkeys(badges) if badge]
        if not points and not badges:
            return
        self.repository.apply_ledger_delta(user_id, points, badges)
        self.invalidate(user_id)
        logger.info(f"Ledger delta for {user_id}: +{points} points, badges={badges}")

    def invalidate(self, user_id: str) -> None:
        invalidate_gamification_cache(self.redis_client, user_id)

    def read(self, user_id: str) -> GamificationProfile:
        """Current profile; users with no ledger yet read as the zero state."""
        cached = get_cached_gamification(self.redis_client, user_id)
        if cached:
            return GamificationProfile.model_validate_json(cached)

        profile = GamificationProfile.model_validate(self.repository.get_gamification(user_id) or {})
        cache_gamification(self.redis_client, user_id, profile.model_dump_json())
        return profile

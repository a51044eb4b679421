"""
Firestore adapter for the scoring and progression engine.

Document layout:
    users/{uid}/dailyLogs/{YYYY-MM-DD}        ActivityRecord
    users/{uid}/gamification/data             GamificationProfile
    users/{uid}/challenges/{challengeId}      ChallengeEnrollment
    users/{uid}/onboardingProfile/data        onboarding answers
    users/{uid}/carbonProfile/baseline        baseline CarbonBreakdown
    challenges/{challengeId}                  ChallengeDefinition
    personalizedChallenges/{uid}              ChallengeCacheEntry

Numeric ledger fields only ever change through Increment and badges only
through ArrayUnion, so concurrent writers for the same user never overwrite
each other.
"""

import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from google.api_core.exceptions import AlreadyExists, GoogleAPICallError
from google.cloud import firestore

from api.error_utils import StorageWriteError
from models import ActivityRecord, ChallengeCacheEntry, ChallengeDefinition, ChallengeEnrollment, GamificationProfile

logger = logging.getLogger(__name__)

# Firestore caps a batch at 500 writes
BATCH_LIMIT = 500


class FirestoreRepository:

    def __init__(self, db: firestore.Client):
        self.db = db

    # --- References ---

    def _user_ref(self, user_id):
        return self.db.collection('users').document(user_id)

    def _daily_log_ref(self, user_id, log_date):
        return self._user_ref(user_id).collection('dailyLogs').document(log_date)

    def _gamification_ref(self, user_id):
        return self._user_ref(user_id).collection('gamification').document('data')

    def _enrollment_ref(self, user_id, challenge_id):
        return self._user_ref(user_id).collection('challenges').document(challenge_id)

    def _challenge_ref(self, challenge_id):
        return self.db.collection('challenges').document(challenge_id)

    def _cache_ref(self, user_id):
        return self.db.collection('personalizedChallenges').document(user_id)

    @staticmethod
    def _to_dict(snapshot) -> Optional[dict]:
        return snapshot.to_dict() if snapshot.exists else None

    def healthcheck(self) -> None:
        self.db.collection('challenges').limit(1).get()

    # --- Daily logs ---

    def save_daily_log(self, user_id: str, record: ActivityRecord) -> None:
        data = record.model_dump(mode='json', exclude_none=True)
        data['updatedAt'] = firestore.SERVER_TIMESTAMP
        try:
            self._daily_log_ref(user_id, record.date).set(data, merge=True)
        except GoogleAPICallError as e:
            logger.error(f"Failed to write daily log {record.date} for {user_id}: {e}", exc_info=True)
            raise StorageWriteError("Failed to save daily log") from e

    def get_daily_log(self, user_id: str, log_date: str) -> Optional[dict]:
        return self._to_dict(self._daily_log_ref(user_id, log_date).get())

    def get_recent_daily_logs(self, user_id: str, limit: int = 7) -> List[dict]:
        query = self._user_ref(user_id).collection('dailyLogs').order_by(
            'date', direction=firestore.Query.DESCENDING
        ).limit(limit)
        return [doc.to_dict() for doc in query.stream()]

    def get_daily_logs_between(self, user_id: str, start: str, end: str) -> List[dict]:
        query = self._user_ref(user_id).collection('dailyLogs').where(
            filter=firestore.FieldFilter('date', '>=', start)
        ).where(
            filter=firestore.FieldFilter('date', '<=', end)
        ).order_by('date', direction=firestore.Query.DESCENDING)
        return [doc.to_dict() for doc in query.stream()]

    def list_daily_log_dates(self, user_id: str) -> List[str]:
        query = self._user_ref(user_id).collection('dailyLogs').select(['date'])
        return [doc.to_dict().get('date', doc.id) for doc in query.stream()]

    # --- Onboarding ---

    def get_onboarding_profile(self, user_id: str) -> Optional[dict]:
        return self._to_dict(self._user_ref(user_id).collection('onboardingProfile').document('data').get())

    def get_carbon_baseline(self, user_id: str) -> Optional[dict]:
        return self._to_dict(self._user_ref(user_id).collection('carbonProfile').document('baseline').get())

    # --- Gamification ledger ---

    def get_gamification(self, user_id: str) -> Optional[dict]:
        return self._to_dict(self._gamification_ref(user_id).get())

    @staticmethod
    def _ledger_delta(points: int, badges: List[str]) -> dict:
        delta = {'updatedAt': firestore.SERVER_TIMESTAMP}
        if points:
            delta['ecoPoints'] = firestore.Increment(points)
        if badges:
            delta['badges'] = firestore.ArrayUnion(list(badges))
        return delta

    def apply_ledger_delta(self, user_id: str, points: int, badges: List[str]) -> None:
        self._gamification_ref(user_id).set(self._ledger_delta(points, badges), merge=True)

    def update_gamification_fields(self, user_id: str, fields: dict) -> None:
        self._gamification_ref(user_id).set({**fields, 'updatedAt': firestore.SERVER_TIMESTAMP}, merge=True)

    def run_streak_update(self, user_id: str, compute: Callable) -> Tuple[GamificationProfile, object]:
        """
        Reads the profile, computes the streak transition and writes it back
        inside one transaction, together with its points and badges. Returns
        (profile before, transition).
        """
        ref = self._gamification_ref(user_id)

        @firestore.transactional
        def update_in_transaction(transaction):
            snapshot = ref.get(transaction=transaction)
            profile = GamificationProfile.model_validate(snapshot.to_dict() or {})
            transition = compute(profile)
            if transition.changed:
                transaction.set(ref, {
                    **transition.profile_fields(),
                    **self._ledger_delta(transition.pointsAwarded, transition.badgesAwarded),
                }, merge=True)
            return profile, transition

        return update_in_transaction(self.db.transaction())

    def commit_gamification_updates(self, updates: Dict[str, dict]) -> None:
        """Applies per-user field updates in batches of BATCH_LIMIT."""
        batch = self.db.batch()
        pending = 0
        for user_id, fields in updates.items():
            batch.set(self._gamification_ref(user_id), {**fields, 'updatedAt': firestore.SERVER_TIMESTAMP}, merge=True)
            pending += 1
            if pending == BATCH_LIMIT:
                logger.info(f"Committing a batch of {BATCH_LIMIT} gamification updates...")
                batch.commit()
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()

    def iter_active_streaks(self) -> Iterator[Tuple[str, GamificationProfile]]:
        query = self.db.collection_group('gamification').where(
            filter=firestore.FieldFilter('dailyLogStreak', '>', 0)
        )
        for doc in query.stream():
            yield doc.reference.parent.parent.id, GamificationProfile.model_validate(doc.to_dict())

    # --- Challenges & enrollments ---

    def get_challenge(self, challenge_id: str) -> Optional[dict]:
        return self._to_dict(self._challenge_ref(challenge_id).get())

    def save_challenge(self, definition: ChallengeDefinition) -> None:
        data = definition.model_dump(mode='json')
        data['updatedAt'] = firestore.SERVER_TIMESTAMP
        self._challenge_ref(definition.challengeId).set(data, merge=True)

    def get_enrollment(self, user_id: str, challenge_id: str) -> Optional[dict]:
        return self._to_dict(self._enrollment_ref(user_id, challenge_id).get())

    def create_enrollment(self, user_id: str, enrollment: ChallengeEnrollment) -> bool:
        """Creates the enrollment; False if the user is already enrolled."""
        try:
            self._enrollment_ref(user_id, enrollment.challengeId).create(enrollment.to_document())
            return True
        except AlreadyExists:
            return False

    def delete_enrollment(self, user_id: str, challenge_id: str) -> None:
        self._enrollment_ref(user_id, challenge_id).delete()

    def list_enrollments(self, user_id: str, completed: Optional[bool] = None) -> List[dict]:
        query = self._user_ref(user_id).collection('challenges')
        if completed is not None:
            query = query.where(filter=firestore.FieldFilter('isCompleted', '==', completed))
        return [doc.to_dict() for doc in query.stream()]

    def commit_enrollment_updates(self, user_id: str, updates: Dict[str, dict]) -> None:
        """Writes every enrollment update for one user as a single atomic batch."""
        if not updates:
            return
        if len(updates) > BATCH_LIMIT:
            raise StorageWriteError(f"Too many enrollment updates for one batch: {len(updates)}")
        batch = self.db.batch()
        for challenge_id, fields in updates.items():
            batch.update(self._enrollment_ref(user_id, challenge_id), {**fields, 'updatedAt': firestore.SERVER_TIMESTAMP})
        batch.commit()

    def credit_enrollment_reward(self, user_id: str, challenge_id: str, points: int, badge: Optional[str]) -> bool:
        """
        Credits a completed enrollment's reward exactly once. The
        `rewardCredited` marker and the ledger increment commit together, so a
        retry after any failure can never double-credit.
        """
        enrollment_ref = self._enrollment_ref(user_id, challenge_id)
        gamification_ref = self._gamification_ref(user_id)

        @firestore.transactional
        def credit_in_transaction(transaction):
            snapshot = enrollment_ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            data = snapshot.to_dict()
            if not data.get('isCompleted') or data.get('rewardCredited'):
                return False
            delta = self._ledger_delta(points, [badge] if badge else [])
            delta['totalChallengesCompleted'] = firestore.Increment(1)
            transaction.set(gamification_ref, delta, merge=True)
            transaction.update(enrollment_ref, {
                'rewardCredited': True,
                'rewardCreditedAt': firestore.SERVER_TIMESTAMP,
            })
            return True

        return credit_in_transaction(self.db.transaction())

    # --- Personalized challenge cache ---

    def get_challenge_cache(self, user_id: str) -> Optional[dict]:
        return self._to_dict(self._cache_ref(user_id).get())

    def save_challenge_cache(self, user_id: str, entry: ChallengeCacheEntry) -> None:
        data = entry.model_dump(exclude={'apiCallCount'})
        data['challenges'] = entry.model_dump(mode='json')['challenges']
        data['apiCallCount'] = firestore.Increment(1)
        self._cache_ref(user_id).set(data, merge=True)

    def list_challenge_cache_entries(self) -> List[dict]:
        return [doc.to_dict() for doc in self.db.collection('personalizedChallenges').stream()]

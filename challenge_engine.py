"""
Challenge progress evaluation.

Each criteria variant has exactly one evaluator. A day's activity advances an
enrollment by at most one step, progress never moves backwards and a
completed enrollment stays completed. Rewards are credited in a second phase
through an idempotent, transactional check-then-credit in the repository.
"""

import datetime
import logging
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from api.error_utils import ChallengeNotFoundError, ConflictError, EnrollmentNotFoundError
from carbon_logic import (
    ELECTRICITY_REFERENCE_CF, TRANSPORT_REFERENCE_CF, ac_hours, reduction_percentage,
    unplugged_devices, water_emission,
)
from models import (
    CarbonBreakdown, ChallengeDefinition, ChallengeEnrollment, DailyLogAnswers, DietCriteria,
    ElectricityCriteria, LifestyleCriteria, TransportCriteria, TransportMode, WastePractice,
    WaterCriteria,
)
from timezone_utils import format_log_date, get_utc_now, parse_log_date

logger = logging.getLogger(__name__)

# Criteria modes that stand for a group of logged modes
MODE_ALIASES = {
    "cycling": {TransportMode.BICYCLE, TransportMode.WALKING},
    "public": {TransportMode.BUS, TransportMode.METRO},
    "public_transport": {TransportMode.BUS, TransportMode.METRO},
}

WASTE_SEGREGATION_PRACTICES = {WastePractice.SEGREGATED, WastePractice.COMPOSTED}

PROGRESS_FIELDS = ('progress', 'lastProgressDate', 'isCompleted', 'completedAt', 'pointsEarned', 'badgeEarned')


# --- Evaluators ---

def _diet_met(criteria: DietCriteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    diet = answers.diet
    if diet is None:
        return False
    if criteria.dietType and diet.dietType is not None:
        accepted = [criteria.dietType] if isinstance(criteria.dietType, str) else criteria.dietType
        if diet.dietType.value in accepted:
            return True
    if diet.mealsToday is not None:
        if criteria.maxMeatPercentage is not None and diet.meat_percentage <= criteria.maxMeatPercentage:
            return True
        if criteria.minPlantPercentage is not None and diet.plant_percentage >= criteria.minPlantPercentage:
            return True
    return criteria.maxOrderedMeals is not None and diet.orderedMeals <= criteria.maxOrderedMeals


def mode_matches(target: str, mode: Optional[TransportMode]) -> bool:
    if mode is None:
        return False
    if target in MODE_ALIASES:
        return mode in MODE_ALIASES[target]
    return mode.value == target


def _transport_met(criteria: TransportCriteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    transport = answers.transport
    if transport is None:
        return False
    if criteria.mode and mode_matches(criteria.mode, transport.mode):
        return True
    if criteria.minReductionPercentage is not None:
        reduction = reduction_percentage(breakdown.transport, TRANSPORT_REFERENCE_CF)
        return reduction >= criteria.minReductionPercentage
    return False


def _electricity_met(criteria: ElectricityCriteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    electricity = answers.electricity
    if electricity is None:
        return False
    if criteria.maxEmission is not None and breakdown.electricity <= criteria.maxEmission:
        return True
    if criteria.maxAcHours is not None and ac_hours(electricity) <= criteria.maxAcHours:
        return True
    if criteria.minUnpluggedDevices is not None and unplugged_devices(electricity) >= criteria.minUnpluggedDevices:
        return True
    if criteria.minReductionPercentage is not None:
        reduction = reduction_percentage(breakdown.electricity, ELECTRICITY_REFERENCE_CF)
        return reduction >= criteria.minReductionPercentage
    return False


def _lifestyle_met(criteria: LifestyleCriteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    # Submitting at all is a day of logging
    if criteria.dailyLogging or not criteria.wasteSegregation:
        return True
    lifestyle = answers.lifestyle
    return lifestyle is not None and lifestyle.wastePractice in WASTE_SEGREGATION_PRACTICES


def _water_met(criteria: WaterCriteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    water = answers.water
    if water is None or water.showerMinutes is None:
        return False
    if criteria.maxEmission is not None and water_emission(water) <= criteria.maxEmission:
        return True
    return criteria.maxShowerMinutes is not None and water.showerMinutes <= criteria.maxShowerMinutes


CRITERIA_EVALUATORS: Dict[type, Callable[..., bool]] = {
    DietCriteria: _diet_met,
    TransportCriteria: _transport_met,
    ElectricityCriteria: _electricity_met,
    LifestyleCriteria: _lifestyle_met,
    WaterCriteria: _water_met,
}


def criteria_met(criteria, answers: DailyLogAnswers, breakdown: CarbonBreakdown) -> bool:
    try:
        evaluator = CRITERIA_EVALUATORS[type(criteria)]
    except KeyError:
        raise TypeError(f"No evaluator registered for {type(criteria).__name__}") from None
    return evaluator(criteria, answers, breakdown)


# --- Progress ---

def advance_enrollment(
    enrollment: ChallengeEnrollment,
    answers: DailyLogAnswers,
    breakdown: CarbonBreakdown,
    log_date: str,
    now: datetime.datetime,
) -> Optional[ChallengeEnrollment]:
    """
    The enrollment after a day's activity, or None when nothing changes.

    Only a date later than the last counted one can advance progress, so a
    resubmitted day is never counted twice. This is stricter than "any date
    other than the last counted one": a qualifying day backfilled before
    lastProgressDate is not counted either, which keeps progress monotonic in
    the log date.
    """
    if enrollment.isCompleted:
        return None
    if enrollment.lastProgressDate is not None and log_date <= enrollment.lastProgressDate:
        return None
    if not criteria_met(enrollment.criteria, answers, breakdown):
        return None

    progress = min(enrollment.progress + 1, enrollment.duration)
    update = {'progress': progress, 'lastProgressDate': log_date}
    if progress >= enrollment.duration:
        update.update({
            'isCompleted': True,
            'completedAt': now,
            'pointsEarned': enrollment.pointsAwarded,
            'badgeEarned': enrollment.badgeAwarded,
        })
    return enrollment.model_copy(update=update)


def evaluate_enrollments(
    enrollments: Iterable[ChallengeEnrollment],
    answers: DailyLogAnswers,
    breakdown: CarbonBreakdown,
    log_date: str,
    now: datetime.datetime,
) -> List[ChallengeEnrollment]:
    updated = []
    for enrollment in enrollments:
        advanced = advance_enrollment(enrollment, answers, breakdown, log_date, now)
        if advanced is not None:
            updated.append(advanced)
    return updated


def progress_fields(enrollment: ChallengeEnrollment) -> dict:
    return {field: getattr(enrollment, field) for field in PROGRESS_FIELDS}


def _joined_date(enrollment: ChallengeEnrollment) -> str:
    if enrollment.joinedAt is None:
        return ""
    return format_log_date(parse_log_date(enrollment.joinedAt))


class ChallengeProgressEngine:

    def __init__(self, repository, ledger, clock: Callable[[], datetime.datetime] = get_utc_now):
        self.repository = repository
        self.ledger = ledger
        self.clock = clock

    def _load_enrollments(self, user_id: str, completed: Optional[bool] = None) -> List[ChallengeEnrollment]:
        enrollments = []
        for data in self.repository.list_enrollments(user_id, completed=completed):
            try:
                enrollments.append(ChallengeEnrollment.model_validate(data))
            except ValidationError as e:
                logger.warning(f"Skipping malformed enrollment {data.get('challengeId')} for {user_id}: {e}")
        return enrollments

    def evaluate(
        self,
        user_id: str,
        answers: DailyLogAnswers,
        breakdown: CarbonBreakdown,
        log_date: str,
    ) -> List[ChallengeEnrollment]:
        """Advances every active enrollment, then credits any completed, uncredited rewards."""
        active = self._load_enrollments(user_id, completed=False)
        updated = evaluate_enrollments(active, answers, breakdown, log_date, self.clock())

        self.repository.commit_enrollment_updates(
            user_id, {enrollment.challengeId: progress_fields(enrollment) for enrollment in updated}
        )
        if updated:
            logger.info(f"Advanced {len(updated)} challenge(s) for {user_id} on {log_date}")

        self.credit_pending_rewards(user_id)
        return updated

    def reprocess(self, user_id: str, today: datetime.date) -> int:
        """
        Re-evaluates active enrollments against retained daily logs dated on or
        after the day each was joined. Recovers progress from a submission whose
        batch commit failed. Crediting is left to credit_pending_rewards.
        """
        active = {e.challengeId: e for e in self._load_enrollments(user_id, completed=False)}
        if not active:
            return 0

        joined = {cid: _joined_date(e) for cid, e in active.items()}
        logs = self.repository.get_daily_logs_between(user_id, min(joined.values()), format_log_date(today))
        now = self.clock()
        changed = set()
        for log in sorted(logs, key=lambda log: log.get('date') or ''):
            log_date = log.get('date')
            if not log_date:
                continue
            try:
                answers = DailyLogAnswers.model_validate(log.get('answers') or {})
                breakdown = CarbonBreakdown.model_validate(log.get('carbonBreakdown') or {})
            except ValidationError as e:
                logger.warning(f"Skipping malformed daily log {log_date} for {user_id}: {e}")
                continue
            for challenge_id, enrollment in active.items():
                if log_date < joined[challenge_id]:
                    continue
                advanced = advance_enrollment(enrollment, answers, breakdown, log_date, now)
                if advanced is not None:
                    active[challenge_id] = advanced
                    changed.add(challenge_id)

        self.repository.commit_enrollment_updates(
            user_id, {cid: progress_fields(active[cid]) for cid in changed}
        )
        if changed:
            logger.info(f"Recovered progress on {len(changed)} challenge(s) for {user_id}")
        return len(changed)

    def credit_pending_rewards(self, user_id: str) -> int:
        pending = [e for e in self._load_enrollments(user_id, completed=True) if not e.rewardCredited]
        credited = 0
        for enrollment in pending:
            if self.repository.credit_enrollment_reward(
                user_id, enrollment.challengeId, enrollment.pointsEarned, enrollment.badgeEarned
            ):
                credited += 1
                logger.info(
                    f"Credited challenge {enrollment.challengeId} for {user_id}: "
                    f"+{enrollment.pointsEarned} points, badge={enrollment.badgeEarned}"
                )
        if credited:
            self.ledger.invalidate(user_id)
        return credited

    def join(self, user_id: str, challenge_id: str) -> ChallengeEnrollment:
        data = self.repository.get_challenge(challenge_id)
        if not data:
            raise ChallengeNotFoundError(f"Challenge '{challenge_id}' not found")

        definition = ChallengeDefinition.model_validate({**data, 'challengeId': challenge_id})
        enrollment = ChallengeEnrollment.from_definition(definition, self.clock())
        if not self.repository.create_enrollment(user_id, enrollment):
            raise ConflictError("Already participating in this challenge")

        logger.info(f"User {user_id} joined challenge {challenge_id}")
        return enrollment

    def leave(self, user_id: str, challenge_id: str) -> None:
        data = self.repository.get_enrollment(user_id, challenge_id)
        if not data:
            raise EnrollmentNotFoundError()
        if data.get('isCompleted'):
            raise ConflictError("Cannot leave a completed challenge")

        self.repository.delete_enrollment(user_id, challenge_id)
        logger.info(f"User {user_id} left challenge {challenge_id}")

    def list_enrollments(self, user_id: str) -> dict:
        enrollments = self._load_enrollments(user_id)
        active = [e for e in enrollments if not e.isCompleted]
        completed = [e for e in enrollments if e.isCompleted]
        return {
            'activeChallenges': active,
            'completedChallenges': completed,
            'totalActive': len(active),
            'totalCompleted': len(completed),
        }

"""
Daily activity submission and the read paths built on top of it.

The ActivityRecord write is the primary effect of a submission and its
failure fails the request. Streak, ledger and challenge updates are secondary:
their failures are logged and never roll back the record. Either failure
hands the user to the background reconciler, which recovers the lost state
from the retained records.
"""

import datetime
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from api.error_utils import RequestValidationError
from carbon_logic import (
    calculate_baseline_footprint, calculate_daily_footprint, carbon_category, walking_avoided_carbon,
)
from models import ActivityRecord, CarbonBreakdown, DailyLogAnswers, StreakInfo
from streak_tracker import advance_streak, catch_up_streak
from timezone_utils import format_log_date, get_current_date, get_utc_now, parse_log_date

logger = logging.getLogger(__name__)

KM_PER_STEP = 0.0008
WEEKLY_SUMMARY_DAYS = 7


def _validation_details(e: ValidationError) -> dict:
    return {"errors": e.errors(include_url=False, include_context=False, include_input=False)}


class ActivityService:

    def __init__(
        self,
        repository,
        ledger,
        challenge_engine,
        challenge_cache,
        clock: Callable[[], datetime.datetime] = get_utc_now,
        today: Callable[[], datetime.date] = get_current_date,
        reconcile_dispatcher: Optional[Callable[[str], None]] = None,
    ):
        self.repository = repository
        self.ledger = ledger
        self.challenge_engine = challenge_engine
        self.challenge_cache = challenge_cache
        self.clock = clock
        self.today = today
        self.reconcile_dispatcher = reconcile_dispatcher

    # --- Submission ---

    def submit_daily_activity(
        self,
        user_id: str,
        log_date,
        answers,
        steps: Optional[int] = None,
        distance: Optional[float] = None,
        calories_burned: Optional[float] = None,
    ) -> dict:
        if not log_date:
            raise RequestValidationError("Date is required", details={"field": "date"})
        try:
            day = parse_log_date(log_date)
        except (TypeError, ValueError):
            raise RequestValidationError("Date must be formatted as YYYY-MM-DD", details={"field": "date"}) from None
        date_key = format_log_date(day)

        if not isinstance(answers, DailyLogAnswers):
            try:
                answers = DailyLogAnswers.model_validate(answers or {})
            except ValidationError as e:
                raise RequestValidationError("Invalid daily log answers", details=_validation_details(e)) from e

        breakdown = calculate_daily_footprint(answers, self._baseline(user_id))
        if steps is not None and distance is None:
            distance = round(steps * KM_PER_STEP, 2)

        record = ActivityRecord(
            date=date_key,
            answers=answers,
            carbonBreakdown=breakdown,
            calculatedDailyCarbonFootprint=breakdown.total,
            steps=steps,
            distance=distance,
            caloriesBurned=calories_burned,
        )
        self.repository.save_daily_log(user_id, record)
        logger.info(f"Saved daily log {date_key} for {user_id}: {breakdown.total} kg CO2e")

        result = {
            'date': date_key,
            'total': breakdown.total,
            'breakdown': breakdown.model_dump(exclude={'total'}),
            'category': carbon_category(breakdown.total),
        }

        streak_info = self._update_streak(user_id, day)
        if streak_info is not None:
            result['streakInfo'] = streak_info.model_dump()

        challenge_update_count = self._update_challenges(user_id, answers, breakdown, date_key)
        if challenge_update_count is not None:
            result['challengeUpdateCount'] = challenge_update_count

        if streak_info is None or challenge_update_count is None:
            self._dispatch_reconcile(user_id)

        return result

    def _baseline(self, user_id: str) -> Optional[CarbonBreakdown]:
        try:
            stored = self.repository.get_carbon_baseline(user_id)
            if stored:
                return CarbonBreakdown.model_validate(stored)
            profile = self.repository.get_onboarding_profile(user_id)
        except Exception as e:
            logger.warning(f"Could not load carbon baseline for {user_id}: {e}")
            return None
        return calculate_baseline_footprint(profile) if profile else None

    def _update_streak(self, user_id: str, day: datetime.date) -> Optional[StreakInfo]:
        try:
            before, transition = self.repository.run_streak_update(user_id, lambda profile: advance_streak(profile, day))
            if transition.changed:
                self.ledger.invalidate(user_id)
        except Exception as e:
            logger.error(f"Error updating streak for {user_id}: {e}", exc_info=True)
            return None

        return StreakInfo(
            newStreak=transition.dailyLogStreak,
            pointsAwarded=transition.pointsAwarded,
            badgeAwarded=transition.badgeAwarded,
            totalPoints=before.ecoPoints + transition.pointsAwarded,
            previousBestStreak=transition.previousBestStreak,
            streakStartDate=transition.streakStartDate,
        )

    def _update_challenges(self, user_id, answers, breakdown, date_key) -> Optional[int]:
        try:
            return len(self.challenge_engine.evaluate(user_id, answers, breakdown, date_key))
        except Exception as e:
            logger.error(f"Error updating challenge progress for {user_id}: {e}", exc_info=True)
            return None

    def _dispatch_reconcile(self, user_id: str) -> None:
        if not self.reconcile_dispatcher:
            return
        try:
            self.reconcile_dispatcher(user_id)
            logger.info(f"Dispatched reconciliation for {user_id}")
        except Exception as e:
            logger.error(f"Failed to dispatch reconciliation for {user_id}: {e}", exc_info=True)

    # --- Reads ---

    def get_daily_log(self, user_id: str, log_date: str) -> Optional[dict]:
        try:
            date_key = format_log_date(parse_log_date(log_date))
        except (TypeError, ValueError):
            raise RequestValidationError("Date must be formatted as YYYY-MM-DD", details={"field": "date"}) from None
        return self.repository.get_daily_log(user_id, date_key)

    def get_weekly_summary(self, user_id: str) -> dict:
        today = self.today()
        start = today - datetime.timedelta(days=WEEKLY_SUMMARY_DAYS - 1)
        logs = self.repository.get_daily_logs_between(user_id, format_log_date(start), format_log_date(today))

        total_carbon = total_steps = total_distance = total_calories = 0
        days_with_carbon = 0
        for log in logs:
            if log.get('calculatedDailyCarbonFootprint'):
                total_carbon += log['calculatedDailyCarbonFootprint']
                days_with_carbon += 1
            total_steps += log.get('steps') or 0
            total_distance += log.get('distance') or 0
            total_calories += log.get('caloriesBurned') or 0

        return {
            'dateRange': {'from': format_log_date(start), 'to': format_log_date(today)},
            'totalDays': len(logs),
            'daysWithCarbonData': days_with_carbon,
            'aggregatedStats': {
                'totalCarbonFootprint': round(total_carbon, 2),
                'averageCarbonFootprint': round(total_carbon / days_with_carbon, 2) if days_with_carbon else 0,
                'totalSteps': total_steps,
                'averageSteps': round(total_steps / len(logs)) if logs else 0,
                'totalDistance': round(total_distance, 2),
                'totalCaloriesBurned': total_calories,
                'carbonSavedByWalking': walking_avoided_carbon(total_steps),
            },
            'dailyLogs': logs,
        }

    def current_footprint(self, user_id: str, profile: Optional[dict]) -> CarbonBreakdown:
        """Latest logged day's breakdown, else the onboarding baseline."""
        recent = self.repository.get_recent_daily_logs(user_id, 1)
        if recent and recent[0].get('carbonBreakdown'):
            return CarbonBreakdown.model_validate(recent[0]['carbonBreakdown'])
        return calculate_baseline_footprint(profile)

    def _challenge_inputs(self, user_id: str):
        try:
            profile = self.repository.get_onboarding_profile(user_id)
            return profile, self.current_footprint(user_id, profile)
        except Exception as e:
            logger.error(f"Failed to load challenge inputs for {user_id}: {e}", exc_info=True)
            return None, CarbonBreakdown()

    def get_personalized_challenges(self, user_id: str) -> dict:
        profile, footprint = self._challenge_inputs(user_id)
        return self.challenge_cache.get_challenges(user_id, profile, footprint)

    def refresh_challenges(self, user_id: str) -> dict:
        profile, footprint = self._challenge_inputs(user_id)
        return self.challenge_cache.refresh_challenges(user_id, profile, footprint)

    # --- Background maintenance ---

    def reconcile_user(self, user_id: str) -> dict:
        """
        Recovers gamification state from the retained daily logs. Challenge
        progress is re-evaluated and pending rewards credited; streak days
        after lastLogDate are scored inside the streak transaction, so a
        concurrent submission cannot score the same day again. Safe to run any
        number of times.
        """
        today = self.today()
        advanced = self.challenge_engine.reprocess(user_id, today)
        credited = self.challenge_engine.credit_pending_rewards(user_id)

        dates = [parse_log_date(d) for d in self.repository.list_daily_log_dates(user_id)]
        _, transition = self.repository.run_streak_update(
            user_id, lambda profile: catch_up_streak(profile, dates, today)
        )
        if transition.changed:
            self.ledger.invalidate(user_id)

        logger.info(
            f"Reconciled {user_id}: {advanced} challenge(s) advanced, {credited} reward(s) credited, "
            f"+{transition.pointsAwarded} streak points, streak {transition.dailyLogStreak}"
        )
        return {
            'challengesAdvanced': advanced,
            'rewardsCredited': credited,
            'streakPointsAwarded': transition.pointsAwarded,
            'streakBadgesAwarded': transition.badgesAwarded,
            'streak': transition.profile_fields(),
        }

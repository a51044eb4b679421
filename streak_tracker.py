"""
Daily-logging streak state machine.

Pure functions over GamificationProfile; persistence and the ledger credit
happen in the repository's streak transaction.
"""

import datetime
import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel

from models import GamificationProfile
from timezone_utils import days_between, format_log_date, parse_log_date

logger = logging.getLogger(__name__)

DAILY_LOG_POINTS = 10

# streak length -> bonus points
STREAK_MILESTONES = {7: 30, 14: 50, 30: 100}


def milestone_badge(days: int) -> str:
    return f"{days}_day_streak"


class StreakTransition(BaseModel):
    dailyLogStreak: int
    lastLogDate: Optional[str]
    streakStartDate: Optional[str]
    previousBestStreak: int
    pointsAwarded: int = 0
    badgeAwarded: Optional[str] = None
    badgesAwarded: List[str] = []
    changed: bool = True

    def profile_fields(self) -> dict:
        return {
            'dailyLogStreak': self.dailyLogStreak,
            'lastLogDate': self.lastLogDate,
            'streakStartDate': self.streakStartDate,
            'previousBestStreak': self.previousBestStreak,
        }


def advance_streak(profile: GamificationProfile, log_date: datetime.date) -> StreakTransition:
    """
    Applies a submission for `log_date` to the profile's streak.

    Same-day resubmissions and backfills of days before the last logged day
    leave the streak untouched and award nothing.
    """
    today = format_log_date(log_date)
    current = profile.dailyLogStreak
    best = profile.previousBestStreak
    start = profile.streakStartDate

    if profile.lastLogDate is None:
        current, start = 1, today
    else:
        gap = days_between(parse_log_date(profile.lastLogDate), log_date)
        if gap <= 0:
            return StreakTransition(
                dailyLogStreak=current,
                lastLogDate=profile.lastLogDate,
                streakStartDate=start,
                previousBestStreak=best,
                changed=False,
            )
        if gap == 1:
            current += 1
            start = start or today
        else:
            logger.info(f"Streak broken after {gap} days, saving best of {max(best, current)}")
            best = max(best, current)
            current, start = 1, today

    points = DAILY_LOG_POINTS
    badge = None
    if current in STREAK_MILESTONES and milestone_badge(current) not in profile.badges:
        badge = milestone_badge(current)
        points += STREAK_MILESTONES[current]

    return StreakTransition(
        dailyLogStreak=current,
        lastLogDate=today,
        streakStartDate=start,
        previousBestStreak=best,
        pointsAwarded=points,
        badgeAwarded=badge,
        badgesAwarded=[badge] if badge else [],
    )


def expire_streak(profile: GamificationProfile, today: datetime.date) -> Optional[dict]:
    """
    Fields that zero out a streak nobody has logged for since before yesterday,
    or None when the streak is still alive.
    """
    if profile.dailyLogStreak <= 0 or profile.lastLogDate is None:
        return None
    if days_between(parse_log_date(profile.lastLogDate), today) <= 1:
        return None
    return {
        'dailyLogStreak': 0,
        'streakStartDate': None,
        'previousBestStreak': max(profile.previousBestStreak, profile.dailyLogStreak),
    }


def catch_up_streak(
    profile: GamificationProfile,
    log_dates: Iterable[datetime.date],
    today: datetime.date,
) -> StreakTransition:
    """
    Scores every retained log date later than the profile's lastLogDate, in
    order, then expires the streak if it has lapsed by `today`.

    lastLogDate only moves together with the points for that day, so dates at
    or before it are already scored and running this again awards nothing.
    """
    current = profile
    points = 0
    badges = []
    for log_date in sorted(set(log_dates)):
        transition = advance_streak(current, log_date)
        if not transition.changed:
            continue
        points += transition.pointsAwarded
        badges.extend(transition.badgesAwarded)
        current = current.model_copy(update={
            **transition.profile_fields(),
            'badges': current.badges + transition.badgesAwarded,
        })

    expired = expire_streak(current, today)
    if expired:
        current = current.model_copy(update=expired)

    return StreakTransition(
        dailyLogStreak=current.dailyLogStreak,
        lastLogDate=current.lastLogDate,
        streakStartDate=current.streakStartDate,
        previousBestStreak=current.previousBestStreak,
        pointsAwarded=points,
        badgeAwarded=badges[-1] if badges else None,
        badgesAwarded=badges,
        changed=bool(points) or bool(expired),
    )

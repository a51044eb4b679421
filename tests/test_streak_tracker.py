import datetime

from models import GamificationProfile
from streak_tracker import DAILY_LOG_POINTS, advance_streak, catch_up_streak, expire_streak

D1 = datetime.date(2025, 3, 1)


def day(offset):
    return D1 + datetime.timedelta(days=offset)


def apply(profile, transition):
    badges = profile.badges + ([transition.badgeAwarded] if transition.badgeAwarded else [])
    return profile.model_copy(update={
        **transition.profile_fields(),
        "badges": badges,
        "ecoPoints": profile.ecoPoints + transition.pointsAwarded,
    })


def test_first_log_starts_streak():
    transition = advance_streak(GamificationProfile(), D1)

    assert transition.dailyLogStreak == 1
    assert transition.streakStartDate == "2025-03-01"
    assert transition.pointsAwarded == DAILY_LOG_POINTS
    assert transition.badgeAwarded is None


def test_next_day_extends_streak_resubmission_and_gap():
    profile = GamificationProfile(dailyLogStreak=5, lastLogDate="2025-03-01", streakStartDate="2025-02-25")

    # next day
    extended = advance_streak(profile, day(1))
    assert extended.dailyLogStreak == 6
    assert extended.badgeAwarded is None
    profile = apply(profile, extended)

    # same day again
    resubmitted = advance_streak(profile, day(1))
    assert resubmitted.changed is False
    assert resubmitted.dailyLogStreak == 6
    assert resubmitted.pointsAwarded == 0

    # eight-day gap
    reset = advance_streak(profile, day(9))
    assert reset.dailyLogStreak == 1
    assert reset.previousBestStreak == 6
    assert reset.streakStartDate == "2025-03-10"


def test_backfilled_day_leaves_streak_alone():
    profile = GamificationProfile(dailyLogStreak=3, lastLogDate="2025-03-05")

    transition = advance_streak(profile, datetime.date(2025, 3, 3))

    assert transition.changed is False
    assert transition.dailyLogStreak == 3
    assert transition.lastLogDate == "2025-03-05"


def test_gap_keeps_higher_previous_best():
    profile = GamificationProfile(dailyLogStreak=2, lastLogDate="2025-03-01", previousBestStreak=10)
    assert advance_streak(profile, day(5)).previousBestStreak == 10


def test_milestone_awards_badge_and_bonus_once():
    profile = GamificationProfile(dailyLogStreak=6, lastLogDate="2025-03-01")

    first = advance_streak(profile, day(1))
    assert first.badgeAwarded == "7_day_streak"
    assert first.pointsAwarded == DAILY_LOG_POINTS + 30

    already_has_badge = profile.model_copy(update={"badges": ["7_day_streak"]})
    again = advance_streak(already_has_badge, day(1))
    assert again.badgeAwarded is None
    assert again.pointsAwarded == DAILY_LOG_POINTS


def test_consecutive_days_increment_by_one_each():
    profile = GamificationProfile()
    for offset in range(14):
        profile = apply(profile, advance_streak(profile, day(offset)))

    assert profile.dailyLogStreak == 14
    assert profile.badges == ["7_day_streak", "14_day_streak"]
    assert profile.ecoPoints == 14 * DAILY_LOG_POINTS + 30 + 50


def test_expire_streak():
    profile = GamificationProfile(dailyLogStreak=4, lastLogDate="2025-03-01", previousBestStreak=2)

    assert expire_streak(profile, day(1)) is None
    assert expire_streak(profile, day(2)) == {
        "dailyLogStreak": 0,
        "streakStartDate": None,
        "previousBestStreak": 4,
    }
    assert expire_streak(GamificationProfile(), day(2)) is None


def test_catch_up_scores_only_days_after_last_log():
    profile = GamificationProfile(ecoPoints=60, dailyLogStreak=6, lastLogDate="2025-03-06", streakStartDate="2025-03-01")
    dates = [day(i) for i in range(7)]

    transition = catch_up_streak(profile, dates, day(6))

    assert transition.dailyLogStreak == 7
    assert transition.lastLogDate == "2025-03-07"
    assert transition.pointsAwarded == DAILY_LOG_POINTS + 30
    assert transition.badgesAwarded == ["7_day_streak"]
    assert transition.changed is True

    caught_up = apply(profile, transition)
    again = catch_up_streak(caught_up, dates, day(6))
    assert again.changed is False
    assert again.pointsAwarded == 0


def test_catch_up_from_scratch_collects_every_milestone():
    transition = catch_up_streak(GamificationProfile(), [day(i) for i in range(14)], day(13))

    assert transition.dailyLogStreak == 14
    assert transition.pointsAwarded == 14 * DAILY_LOG_POINTS + 30 + 50
    assert transition.badgesAwarded == ["7_day_streak", "14_day_streak"]


def test_catch_up_handles_gaps_and_expiry():
    dates = [day(0), day(1), day(2), day(9), day(10), day(10)]

    live = catch_up_streak(GamificationProfile(), dates, day(10))
    assert live.dailyLogStreak == 2
    assert live.previousBestStreak == 3
    assert live.streakStartDate == "2025-03-10"

    lapsed = catch_up_streak(GamificationProfile(), dates, day(13))
    assert lapsed.dailyLogStreak == 0
    assert lapsed.previousBestStreak == 3
    assert lapsed.pointsAwarded == 5 * DAILY_LOG_POINTS


def test_catch_up_keeps_existing_badges_unique():
    profile = GamificationProfile(badges=["7_day_streak"])

    transition = catch_up_streak(profile, [day(i) for i in range(7)], day(6))

    assert transition.badgesAwarded == []
    assert transition.pointsAwarded == 7 * DAILY_LOG_POINTS

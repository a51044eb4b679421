import pytest

from carbon_logic import (
    calculate_baseline_footprint, calculate_daily_footprint, carbon_category, walking_avoided_carbon,
)
from models import AcHours, CarbonBreakdown, DailyLogAnswers, DietAnswers, TransportMode


def test_low_impact_plant_based_walking_day():
    breakdown = calculate_daily_footprint({
        "transport": {"mode": "walking"},
        "diet": {"mealsToday": 3, "meatMeals": 0},
        "electricity": {"acHours": "0"},
    })

    assert breakdown.transport == 0
    assert breakdown.diet == pytest.approx(1.5)
    assert breakdown.electricity == 0
    assert breakdown.total == pytest.approx(1.5)
    assert carbon_category(breakdown.total) == "Low Impact"


def test_full_day_breakdown_sums_to_total():
    breakdown = calculate_daily_footprint({
        "transport": {"mode": "personal_car", "distance": "6_15km"},
        "diet": {"mealsToday": 3, "meatMeals": 1, "orderedMeals": 1},
        "electricity": {"acHours": "2_4", "appliances": ["refrigerator"], "workedFromHome": True},
        "lifestyle": {"onlineOrders": 1, "screenTime": "2_4", "wastePractice": "segregated"},
        "water": {"showerMinutes": 10},
    })

    assert breakdown.transport == pytest.approx(11.25)
    assert breakdown.diet == pytest.approx(7.5)
    assert breakdown.electricity == pytest.approx(8.6)
    assert breakdown.lifestyle == pytest.approx(2.72)
    parts = breakdown.transport + breakdown.diet + breakdown.electricity + breakdown.lifestyle
    assert abs(parts - breakdown.total) < 0.011


def test_unknown_answer_values_weigh_nothing():
    answers = DailyLogAnswers.model_validate({"transport": {"mode": "hoverboard", "distance": "6_15km"}})

    assert answers.transport.mode is TransportMode.UNKNOWN
    assert calculate_daily_footprint(answers).transport == 0


def test_numeric_zero_ac_hours_is_accepted():
    answers = DailyLogAnswers.model_validate({"electricity": {"acHours": 0}})
    assert answers.electricity.acHours is AcHours.NONE


def test_missing_categories_fall_back_to_baseline():
    baseline = CarbonBreakdown(transport=3.0, diet=2.0, electricity=1.0, lifestyle=0.5, total=6.5)

    breakdown = calculate_daily_footprint({"diet": {"dietType": "vegan"}}, baseline)

    assert breakdown.diet == pytest.approx(1.5)
    assert breakdown.transport == pytest.approx(3.0)
    assert breakdown.electricity == pytest.approx(1.0)
    assert breakdown.lifestyle == pytest.approx(0.5)
    assert breakdown.total == pytest.approx(6.0)


def test_missing_categories_without_baseline_are_zero():
    breakdown = calculate_daily_footprint({"diet": {"dietType": "non_veg"}})
    assert breakdown.model_dump() == {
        "transport": 0.0, "diet": 5.0, "electricity": 0.0, "lifestyle": 0.0, "total": 5.0,
    }


def test_zero_meals_gives_zero_ratios():
    diet = DietAnswers(mealsToday=0, meatMeals=0)
    assert diet.meat_percentage == 0
    assert diet.plant_percentage == 0


def test_meat_meals_are_capped_by_meals_eaten():
    breakdown = calculate_daily_footprint({"diet": {"mealsToday": 2, "meatMeals": 5}})
    assert breakdown.diet == pytest.approx(9.0)


@pytest.mark.parametrize("total, label", [
    (9.99, "Low Impact"),
    (10, "Moderate Impact"),
    (19.99, "Moderate Impact"),
    (20, "High Impact"),
    (30, "Very High Impact"),
])
def test_carbon_category_thresholds(total, label):
    assert carbon_category(total) == label


def test_baseline_from_onboarding_profile():
    breakdown = calculate_baseline_footprint({
        "transport": {"primaryMode": "bus", "dailyDistance": "6_15km"},
    })

    assert breakdown.transport == pytest.approx(3.75)
    assert breakdown.diet == 0
    assert breakdown.total == pytest.approx(3.75)


def test_walking_avoided_carbon():
    assert walking_avoided_carbon(10000) == pytest.approx(1.6)

"""
Carbon footprint calculation.

Pure functions only: a day's answers (and optionally the user's onboarding
baseline) go in, a CarbonBreakdown comes out. All values are kg CO2e per day.
"""

from typing import Optional, Union

from models import (
    AcHours, Appliance, CarbonBreakdown, DailyLogAnswers, DietAnswers, DietType,
    DistanceBucket, ElectricityAnswers, LifestyleAnswers, ScreenTime, TransportAnswers,
    TransportMode, WastePractice, WaterAnswers,
)


CATEGORIES = ("transport", "diet", "electricity", "lifestyle")

# --- DAILY EMISSION FACTORS ---

TRANSPORT_MODE_BASE = {
    TransportMode.PERSONAL_CAR: 4.5,
    TransportMode.TWO_WHEELER: 2.0,
    TransportMode.BUS: 1.5,
    TransportMode.METRO: 0.8,
    TransportMode.BICYCLE: 0.0,
    TransportMode.WALKING: 0.0,
    TransportMode.WORK_FROM_HOME: 0.0,
    TransportMode.UNKNOWN: 0.0,
}

DISTANCE_MULTIPLIER = {
    DistanceBucket.KM_0_5: 1.0,
    DistanceBucket.KM_6_15: 2.5,
    DistanceBucket.KM_16_30: 4.0,
    DistanceBucket.KM_31_50: 6.0,
    DistanceBucket.KM_51_PLUS: 8.0,
    DistanceBucket.UNKNOWN: 1.0,
}

MEAT_MEAL_CF = 4.5
DAIRY_MEAL_CF = 1.2
PLANT_MEAL_CF = 0.5
ORDERED_MEAL_CF = 2.0  # delivery and packaging overhead per ordered meal

DIET_TYPE_DAILY_CF = {
    DietType.VEGAN: 1.5,
    DietType.VEGETARIAN: 2.0,
    DietType.EGGETARIAN: 3.0,
    DietType.NON_VEG: 5.0,
    DietType.UNKNOWN: 0.0,
}

GRID_EMISSION_FACTOR = 0.9  # kg CO2e per kWh
AC_KWH_PER_HOUR = 2.0
WORK_FROM_HOME_CF = 2.0

AC_HOURS = {
    AcHours.NONE: 0,
    AcHours.LESS_2: 1,
    AcHours.HOURS_2_4: 3,
    AcHours.HOURS_4_PLUS: 6,
    AcHours.UNKNOWN: 0,
}

APPLIANCE_MONTHLY_KWH = {
    Appliance.AIR_CONDITIONER: 60,
    Appliance.GEYSER: 30,
    Appliance.REFRIGERATOR: 40,
    Appliance.WASHING_MACHINE: 15,
    Appliance.MICROWAVE: 10,
    Appliance.LAPTOP_DESKTOP: 20,
    Appliance.TV_CONSOLE: 15,
    Appliance.UNKNOWN: 0,
}

# Devices a household is assumed to own when no unplugged count is reported
ASSUMED_DEVICE_COUNT = 5

ONLINE_ORDER_CF = 2.0

SCREEN_TIME_CF = {
    ScreenTime.LESS_2: 0.14,
    ScreenTime.HOURS_2_4: 0.28,
    ScreenTime.HOURS_4_6: 0.43,
    ScreenTime.HOURS_6_PLUS: 0.57,
    ScreenTime.UNKNOWN: 0.0,
}

RECYCLING_PRACTICES = {WastePractice.SEGREGATED, WastePractice.COMPOSTED, WastePractice.RECYCLED}
RECYCLING_MULTIPLIER = 0.8

SHOWER_CF_PER_MINUTE = 0.09  # electric geyser, ~9 L/min

# Fixed reference days that "reduction %" challenge criteria compare against
TRANSPORT_REFERENCE_CF = TRANSPORT_MODE_BASE[TransportMode.PERSONAL_CAR] * DISTANCE_MULTIPLIER[DistanceBucket.KM_6_15]
ELECTRICITY_REFERENCE_CF = 6.0

# --- CATEGORY HELPERS ---

def transport_emission(transport: TransportAnswers) -> float:
    if transport.mode is None:
        return 0.0
    base = TRANSPORT_MODE_BASE[transport.mode]
    multiplier = DISTANCE_MULTIPLIER[transport.distance] if transport.distance else 1.0
    return base * multiplier

def diet_emission(diet: DietAnswers) -> float:
    if diet.mealsToday is not None:
        meat = diet.meat_meals
        cf = meat * MEAT_MEAL_CF + (diet.mealsToday - meat) * PLANT_MEAL_CF
    elif diet.dietType is not None:
        cf = DIET_TYPE_DAILY_CF[diet.dietType]
    else:
        cf = 0.0
    return cf + diet.orderedMeals * ORDERED_MEAL_CF

def ac_hours(electricity: ElectricityAnswers) -> float:
    return AC_HOURS[electricity.acHours] if electricity.acHours else 0

def unplugged_devices(electricity: ElectricityAnswers) -> int:
    if electricity.unpluggedDevices is not None:
        return electricity.unpluggedDevices
    return max(0, ASSUMED_DEVICE_COUNT - len(electricity.appliances))

def electricity_emission(electricity: ElectricityAnswers) -> float:
    cf = ac_hours(electricity) * AC_KWH_PER_HOUR * GRID_EMISSION_FACTOR
    for appliance in electricity.appliances:
        cf += APPLIANCE_MONTHLY_KWH[appliance] / 30 * GRID_EMISSION_FACTOR
    if electricity.workedFromHome:
        cf += WORK_FROM_HOME_CF
    return cf

def water_emission(water: Optional[WaterAnswers]) -> float:
    if water is None or water.showerMinutes is None:
        return 0.0
    return water.showerMinutes * SHOWER_CF_PER_MINUTE

def lifestyle_emission(lifestyle: Optional[LifestyleAnswers], water: Optional[WaterAnswers] = None) -> float:
    cf = 0.0
    if lifestyle is not None:
        cf = lifestyle.onlineOrders * ONLINE_ORDER_CF
        if lifestyle.screenTime:
            cf += SCREEN_TIME_CF[lifestyle.screenTime]
        if lifestyle.wastePractice in RECYCLING_PRACTICES:
            cf *= RECYCLING_MULTIPLIER
    return cf + water_emission(water)

def reduction_percentage(actual: float, reference: float) -> float:
    """Percent below `reference`; 0 when there is no reference to compare to."""
    if reference <= 0:
        return 0.0
    return (reference - actual) / reference * 100

def _round(value: float) -> float:
    return round(value, 2)

# --- DAILY FOOTPRINT ---

def calculate_daily_footprint(
    answers: Union[DailyLogAnswers, dict],
    baseline: Optional[CarbonBreakdown] = None,
) -> CarbonBreakdown:
    """
    Calculates a day's footprint from daily-log answers.

    A category the user did not answer falls back to the baseline's value for
    that category when a baseline is given, and to zero otherwise.
    """
    if not isinstance(answers, DailyLogAnswers):
        answers = DailyLogAnswers.model_validate(answers or {})

    computed = {}
    if answers.transport is not None:
        computed["transport"] = transport_emission(answers.transport)
    if answers.diet is not None:
        computed["diet"] = diet_emission(answers.diet)
    if answers.electricity is not None:
        computed["electricity"] = electricity_emission(answers.electricity)
    if answers.lifestyle is not None or answers.water is not None:
        computed["lifestyle"] = lifestyle_emission(answers.lifestyle, answers.water)

    breakdown = {}
    for category in CATEGORIES:
        if category in computed:
            breakdown[category] = _round(computed[category])
        elif baseline is not None:
            breakdown[category] = _round(getattr(baseline, category))
        else:
            breakdown[category] = 0.0

    total = _round(sum(breakdown.values()))
    return CarbonBreakdown(total=total, **breakdown)

def carbon_category(total: float) -> str:
    if total < 10:
        return "Low Impact"
    if total < 20:
        return "Moderate Impact"
    if total < 30:
        return "High Impact"
    return "Very High Impact"

def walking_avoided_carbon(steps: int) -> float:
    """Car emissions avoided by walking `steps` instead of driving."""
    distance_km = steps * 0.762 / 1000
    return _round(distance_km * 0.21)

# --- ONBOARDING BASELINE ---
# The onboarding questionnaire uses its own, coarser vocabulary. Unknown keys
# fall back to the neutral value of each table.

BASELINE_TRANSPORT = {
    "primaryMode": {
        "personal_car": (4.5, True),
        "two_wheeler": (2.0, True),
        "bus": (1.5, False),
        "metro_train": (0.8, False),
        "bicycle": (0.0, False),
        "walking": (0.0, False),
        "work_from_home": (0.0, False),
    },
    "fuelType": {"petrol": 1.0, "diesel": 1.15, "cng": 0.7, "electric": 0.4, "hybrid": 0.6},
    "evChargingSource": {"home_grid": 1.0, "public_stations": 1.1, "renewable": 0.2},
    "dailyDistance": {"0_5km": 1.0, "6_15km": 2.5, "16_30km": 4.0, "31_50km": 6.0, "51plus_km": 8.0},
    "passengers": {"alone": 1.0, "one_passenger": 0.6, "two_plus_passengers": 0.4, "shared_public": 0.3},
    "flightsPerYear": {"0": 0.0, "1_2": 8.5, "3_5": 21.0, "6plus": 42.0},
    "mileage": {"low": 1.3, "average": 1.0, "good": 0.7, "excellent": 0.5},
}

BASELINE_DIET = {
    "orderedMealsPerWeek": {
        "never": 0.0, "1_2_week": 0.3, "3_5_week": 0.6, "6_9_week": 1.0,
        "10_15_week": 1.8, "16_20_week": 2.5, "20plus_week": 3.0,
    },
    "junkFood": {"daily": 1.2, "few_times_week": 1.1, "occasionally": 1.05, "rarely_never": 1.0},
    "foodWaste": {"never": 1.0, "rarely": 1.05, "sometimes": 1.15, "often": 1.25},
}

BASELINE_ELECTRICITY = {
    "emissionFactors": {"mostly_renewable": 0.1, "partially_renewable": 0.5, "no_renewable": 0.9},
    "usageEstimates": {"less_100": 75, "100_200": 150, "200_400": 300, "400_600": 500, "600plus": 700},
    "timeAtHome": {"4_hours_less": 0.5, "5_8_hours": 0.7, "9_12_hours": 0.9, "12plus_hours": 1.0},
}

BASELINE_LIFESTYLE = {
    "screenTimeWeekly": {"less_2hrs": 1, "2_4hrs": 2, "4_6hrs": 3, "6plus_hrs": 4},
    "nonEssentialShopping": {"weekly": 10, "few_times_month": 6, "monthly": 3, "rarely_never": 0},
    "fashionShopping": {"more_once_month": 8, "every_1_2_months": 5, "every_3plus_months": 2, "rarely_never": 0},
    "onlineOrders": {"0": 0, "1_5": 2, "6_10": 4, "11_15": 6, "15plus": 8},
    "wasteManagement": {"recycle_compost": 0.8, "recycle_some": 0.9, "throw_everything": 1.1},
}

def _number(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default

def _baseline_transport(data: dict) -> float:
    t = BASELINE_TRANSPORT
    cf = 0.0
    mode = t["primaryMode"].get(data.get("primaryMode"))
    if mode:
        cf, uses_fuel = mode
        fuel_type = data.get("fuelType")
        if uses_fuel and fuel_type:
            cf *= t["fuelType"].get(fuel_type, 1.0)
            if fuel_type == "electric":
                cf *= t["evChargingSource"].get(data.get("evChargingSource"), 1.0)
            cf *= t["mileage"].get(data.get("mileage"), 1.0)
        cf *= t["dailyDistance"].get(data.get("dailyDistance"), 1.0)
        cf *= t["passengers"].get(data.get("passengers"), 1.0)
    # Annual flights averaged per day
    cf += t["flightsPerYear"].get(str(data.get("flightsPerYear", "0")), 0.0)
    return cf

def _baseline_diet(data: dict) -> float:
    d = BASELINE_DIET
    per_meal = (
        _number(data.get("meatPercentage")) / 100 * MEAT_MEAL_CF
        + _number(data.get("dairyPercentage")) / 100 * DAIRY_MEAL_CF
        + _number(data.get("plantPercentage")) / 100 * PLANT_MEAL_CF
    )
    cf = per_meal * _number(data.get("mealsPerDay"))
    cf += d["orderedMealsPerWeek"].get(data.get("orderedMealsFreq"), 0.0) * ORDERED_MEAL_CF
    cf *= d["junkFood"].get(data.get("junkFoodFreq"), 1.0)
    cf *= d["foodWaste"].get(data.get("foodWaste"), 1.0)
    return cf

def _baseline_electricity(data: dict) -> float:
    e = BASELINE_ELECTRICITY
    factor = e["emissionFactors"].get(data.get("renewableEnergy"), GRID_EMISSION_FACTOR)
    usage = data.get("monthlyKwh")
    monthly_kwh = e["usageEstimates"].get(usage) if isinstance(usage, str) and usage in e["usageEstimates"] else _number(usage)
    household = _number(data.get("householdSize"), 1.0) or 1.0
    monthly_cf = monthly_kwh * factor / household * e["timeAtHome"].get(data.get("timeAtHome"), 1.0)
    for appliance in data.get("appliances") or []:
        monthly_cf += APPLIANCE_MONTHLY_KWH[Appliance(appliance)] * factor
    return monthly_cf / 30

def _baseline_lifestyle(data: dict) -> float:
    table = BASELINE_LIFESTYLE
    monthly_cf = table["screenTimeWeekly"].get(data.get("screenTime"), 0) * 4.33
    monthly_cf += table["nonEssentialShopping"].get(data.get("nonEssentialShopping"), 0)
    monthly_cf += table["fashionShopping"].get(data.get("fashionShopping"), 0)
    monthly_cf += table["onlineOrders"].get(str(data.get("onlineOrders", "0")), 0)
    monthly_cf *= table["wasteManagement"].get(data.get("wasteManagement"), 1.0)
    return monthly_cf / 30

_BASELINE_CALCULATORS = {
    "transport": _baseline_transport,
    "diet": _baseline_diet,
    "electricity": _baseline_electricity,
    "lifestyle": _baseline_lifestyle,
}

def calculate_baseline_footprint(profile: Optional[dict]) -> CarbonBreakdown:
    """Calculates the typical-day footprint from an onboarding profile."""
    profile = profile or {}
    breakdown = {}
    for category, calculator in _BASELINE_CALCULATORS.items():
        section = profile.get(category)
        breakdown[category] = _round(calculator(section)) if section else 0.0
    return CarbonBreakdown(total=_round(sum(breakdown.values())), **breakdown)

import logging
from enum import Enum
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100


# --- CLOSED ANSWER VOCABULARIES ---

class AnswerEnum(str, Enum):
    """
    Categorical daily-log answer. Values outside the vocabulary coerce to
    UNKNOWN, which every emission table weights as zero.
    """

    @classmethod
    def _missing_(cls, value):
        logger.debug(f"Unknown {cls.__name__} value {value!r}, treating as UNKNOWN")
        return cls.UNKNOWN


class TransportMode(AnswerEnum):
    PERSONAL_CAR = "personal_car"
    TWO_WHEELER = "two_wheeler"
    BUS = "bus"
    METRO = "metro"
    BICYCLE = "bicycle"
    WALKING = "walking"
    WORK_FROM_HOME = "work_from_home"
    UNKNOWN = "unknown"


class DistanceBucket(AnswerEnum):
    KM_0_5 = "0_5km"
    KM_6_15 = "6_15km"
    KM_16_30 = "16_30km"
    KM_31_50 = "31_50km"
    KM_51_PLUS = "51plus_km"
    UNKNOWN = "unknown"


class DietType(AnswerEnum):
    VEGAN = "vegan"
    VEGETARIAN = "vegetarian"
    EGGETARIAN = "eggetarian"
    NON_VEG = "non_veg"
    UNKNOWN = "unknown"


class AcHours(AnswerEnum):
    NONE = "0"
    LESS_2 = "less_2"
    HOURS_2_4 = "2_4"
    HOURS_4_PLUS = "4plus"
    UNKNOWN = "unknown"


class Appliance(AnswerEnum):
    AIR_CONDITIONER = "air_conditioner"
    GEYSER = "geyser"
    REFRIGERATOR = "refrigerator"
    WASHING_MACHINE = "washing_machine"
    MICROWAVE = "microwave"
    LAPTOP_DESKTOP = "laptop_desktop"
    TV_CONSOLE = "tv_console"
    UNKNOWN = "unknown"


class ScreenTime(AnswerEnum):
    LESS_2 = "less_2"
    HOURS_2_4 = "2_4"
    HOURS_4_6 = "4_6"
    HOURS_6_PLUS = "6plus"
    UNKNOWN = "unknown"


class WastePractice(AnswerEnum):
    SEGREGATED = "segregated"
    COMPOSTED = "composted"
    RECYCLED = "recycled"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class ChallengeType(str, Enum):
    DIET = "diet"
    TRANSPORT = "transport"
    ELECTRICITY = "electricity"
    LIFESTYLE = "lifestyle"
    WATER = "water"


# --- DAILY LOG ANSWERS ---

class TransportAnswers(BaseModel):
    mode: Optional[TransportMode] = None
    distance: Optional[DistanceBucket] = None


class DietAnswers(BaseModel):
    dietType: Optional[DietType] = None
    mealsToday: Optional[int] = Field(default=None, ge=0)
    meatMeals: int = Field(default=0, ge=0)
    orderedMeals: int = Field(default=0, ge=0)

    @property
    def meat_meals(self) -> int:
        # Never more meat meals than meals
        return min(self.meatMeals, self.mealsToday or 0)

    @property
    def meat_percentage(self) -> float:
        if not self.mealsToday:
            return 0.0
        return self.meat_meals / self.mealsToday * 100

    @property
    def plant_percentage(self) -> float:
        if not self.mealsToday:
            return 0.0
        return (self.mealsToday - self.meat_meals) / self.mealsToday * 100


class ElectricityAnswers(BaseModel):
    acHours: Optional[AcHours] = None
    appliances: List[Appliance] = []
    workedFromHome: bool = False
    unpluggedDevices: Optional[int] = Field(default=None, ge=0)

    @field_validator('acHours', mode='before')
    @classmethod
    def _stringify_ac_hours(cls, value):
        # Clients send 0 as a number as often as "0"
        return str(value) if value is not None else None


class LifestyleAnswers(BaseModel):
    onlineOrders: int = Field(default=0, ge=0)
    screenTime: Optional[ScreenTime] = None
    wastePractice: Optional[WastePractice] = None


class WaterAnswers(BaseModel):
    showerMinutes: Optional[float] = Field(default=None, ge=0)


class DailyLogAnswers(BaseModel):
    transport: Optional[TransportAnswers] = None
    diet: Optional[DietAnswers] = None
    electricity: Optional[ElectricityAnswers] = None
    lifestyle: Optional[LifestyleAnswers] = None
    water: Optional[WaterAnswers] = None


# --- CARBON ---

class CarbonBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    transport: float = 0.0
    diet: float = 0.0
    electricity: float = 0.0
    lifestyle: float = 0.0
    total: float = 0.0


class ActivityRecord(BaseModel):
    date: str
    answers: DailyLogAnswers
    carbonBreakdown: CarbonBreakdown
    calculatedDailyCarbonFootprint: float
    steps: Optional[int] = None
    distance: Optional[float] = None
    caloriesBurned: Optional[float] = None
    updatedAt: Optional[datetime] = None


# --- GAMIFICATION ---

class GamificationProfile(BaseModel):
    ecoPoints: int = Field(default=0, ge=0)
    badges: List[str] = []
    dailyLogStreak: int = Field(default=0, ge=0)
    lastLogDate: Optional[str] = None
    streakStartDate: Optional[str] = None
    previousBestStreak: int = Field(default=0, ge=0)
    totalChallengesCompleted: int = 0
    updatedAt: Optional[datetime] = None

    @field_validator('badges')
    @classmethod
    def _dedupe_badges(cls, badges):
        return list(dict.fromkeys(badges))

    @computed_field
    @property
    def level(self) -> int:
        return self.ecoPoints // POINTS_PER_LEVEL + 1


class StreakInfo(BaseModel):
    newStreak: int
    pointsAwarded: int
    badgeAwarded: Optional[str] = None
    totalPoints: int
    previousBestStreak: int = 0
    streakStartDate: Optional[str] = None


# --- CHALLENGES ---

class DietCriteria(BaseModel):
    type: Literal["diet"] = "diet"
    # One diet type or any of several
    dietType: Optional[Union[str, List[str]]] = None
    maxMeatPercentage: Optional[float] = None
    minPlantPercentage: Optional[float] = None
    maxOrderedMeals: Optional[int] = None


class TransportCriteria(BaseModel):
    type: Literal["transport"] = "transport"
    mode: Optional[str] = None
    minReductionPercentage: Optional[float] = None


class ElectricityCriteria(BaseModel):
    type: Literal["electricity"] = "electricity"
    maxEmission: Optional[float] = None
    maxAcHours: Optional[float] = None
    minUnpluggedDevices: Optional[int] = None
    minReductionPercentage: Optional[float] = None


class LifestyleCriteria(BaseModel):
    type: Literal["lifestyle"] = "lifestyle"
    dailyLogging: bool = False
    wasteSegregation: bool = False


class WaterCriteria(BaseModel):
    type: Literal["water"] = "water"
    maxEmission: Optional[float] = None
    maxShowerMinutes: Optional[float] = None


ChallengeCriteria = Annotated[
    Union[DietCriteria, TransportCriteria, ElectricityCriteria, LifestyleCriteria, WaterCriteria],
    Field(discriminator="type"),
]


def _tag_criteria(data, type_key):
    """Stored criteria carry no tag of their own; borrow it from the challenge type."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    if data.get("duration") is None:
        data.pop("duration", None)
    criteria = data.get("criteria") or {}
    if isinstance(criteria, dict) and "type" not in criteria and data.get(type_key):
        data["criteria"] = {**criteria, "type": ChallengeType(data[type_key]).value}
    return data


class ChallengeDefinition(BaseModel):
    challengeId: str
    name: str
    description: str = ""
    type: ChallengeType
    criteria: ChallengeCriteria
    duration: int = Field(default=1, ge=1)
    pointsAwarded: int = Field(default=0, ge=0)
    badgeAwarded: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _tag(cls, data):
        return _tag_criteria(data, "type")


class ChallengeEnrollment(BaseModel):
    challengeId: str
    challengeName: str = ""
    challengeType: ChallengeType
    criteria: ChallengeCriteria
    duration: int = Field(default=1, ge=1)
    pointsAwarded: int = Field(default=0, ge=0)
    badgeAwarded: Optional[str] = None
    progress: int = Field(default=0, ge=0)
    isCompleted: bool = False
    joinedAt: Optional[datetime] = None
    lastProgressDate: Optional[str] = None
    completedAt: Optional[datetime] = None
    pointsEarned: int = 0
    badgeEarned: Optional[str] = None
    rewardCredited: bool = False

    @model_validator(mode="before")
    @classmethod
    def _tag(cls, data):
        return _tag_criteria(data, "challengeType")

    @classmethod
    def from_definition(cls, definition: ChallengeDefinition, joined_at: datetime) -> "ChallengeEnrollment":
        return cls(
            challengeId=definition.challengeId,
            challengeName=definition.name,
            challengeType=definition.type,
            criteria=definition.criteria,
            duration=definition.duration,
            pointsAwarded=definition.pointsAwarded,
            badgeAwarded=definition.badgeAwarded,
            joinedAt=joined_at,
        )

    def to_document(self) -> dict:
        data = self.model_dump(mode="json")
        # Firestore stores native timestamps
        data["joinedAt"] = self.joinedAt
        data["completedAt"] = self.completedAt
        return data


class PersonalizedChallenge(BaseModel):
    challengeId: str
    name: str
    description: str
    type: ChallengeType
    difficulty: Optional[str] = None
    duration: int = Field(default=7, ge=1)
    pointsAwarded: int = Field(default=0, ge=0)
    badgeAwarded: Optional[str] = None
    criteria: dict = {}
    tips: List[str] = []
    expectedImpact: Optional[str] = None
    isPersonalized: bool = True
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None


class ChallengeCacheEntry(BaseModel):
    challenges: List[dict]
    fingerprint: str
    footprintSnapshot: float
    generatedAt: datetime
    expiresAt: datetime
    apiCallCount: int = 0

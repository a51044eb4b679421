from pydantic import BaseModel, Field
from typing import List, Optional

from models import ChallengeEnrollment, DailyLogAnswers

# --- DAILY LOGS ---
class DailyLogRequest(BaseModel):
    # Checked by the engine so a missing date gets its own error message
    date: Optional[str] = None
    answers: DailyLogAnswers = DailyLogAnswers()
    steps: Optional[int] = Field(default=None, ge=0)
    distance: Optional[float] = Field(default=None, ge=0)
    caloriesBurned: Optional[float] = Field(default=None, ge=0)

# --- CHALLENGES ---
class MyChallengesResponse(BaseModel):
    activeChallenges: List[ChallengeEnrollment]
    completedChallenges: List[ChallengeEnrollment]
    totalActive: int
    totalCompleted: int

class PersonalizedChallengesResponse(BaseModel):
    challenges: List[dict]
    fromCache: bool
    cacheAge: Optional[float] = None
    generated: bool = False
    fallback: bool = False

import datetime
import json
import logging
import os
from collections import Counter
from typing import Callable, List, Optional

import redis
from google import genai
from google.genai import types
from pydantic import ValidationError

from api.error_utils import ExternalServiceError
from api.prompts import CHALLENGE_GENERATION_PROMPT
from carbon_logic import carbon_category
from models import CarbonBreakdown, ChallengeType, PersonalizedChallenge

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
DEFAULT_TIMEOUT_MS = int(os.environ.get("GEMINI_TIMEOUT_MS", "30000"))
KEY_INDEX_REDIS_KEY = "current_challenge_gemini_key_index"

# Footprint assumed for the prompt when nothing has been calculated yet
DEFAULT_PROMPT_FOOTPRINT = 20

FALLBACK_CHALLENGES = [
    {
        "name": "Carbon Footprint Awareness Week",
        "description": "Track your daily carbon footprint and identify one area for improvement each day",
        "type": ChallengeType.LIFESTYLE,
        "difficulty": "easy",
        "pointsAwarded": 20,
        "badgeAwarded": "Carbon Tracker",
        "criteria": {"dailyLogging": True},
        "tips": [
            "Log your daily activities consistently",
            "Focus on small, achievable changes",
            "Compare your footprint day by day",
        ],
        "expectedImpact": "1-2 kg CO2e reduction per week",
    },
    {
        "name": "Plant-Based Meal Challenge",
        "description": "Replace 3 meat-based meals with plant-based alternatives this week",
        "type": ChallengeType.DIET,
        "difficulty": "medium",
        "pointsAwarded": 30,
        "badgeAwarded": "Plant Pioneer",
        "criteria": {"maxMeatPercentage": 30},
        "tips": [
            "Try new plant-based recipes",
            "Focus on protein-rich alternatives",
            "Start with one meal per day",
        ],
        "expectedImpact": "3-5 kg CO2e reduction per week",
    },
    {
        "name": "Energy Saver Challenge",
        "description": "Reduce your electricity usage by 15% through mindful appliance use",
        "type": ChallengeType.ELECTRICITY,
        "difficulty": "medium",
        "pointsAwarded": 25,
        "badgeAwarded": "Energy Saver",
        "criteria": {"minReductionPercentage": 15},
        "tips": [
            "Unplug devices when not in use",
            "Use natural light during the day",
            "Optimize AC temperature settings",
        ],
        "expectedImpact": "2-4 kg CO2e reduction per week",
    },
]


def _to_json(value) -> str:
    return json.dumps(value or {}, indent=2, default=str)


def summarize_recent_logs(recent_logs: List[dict]) -> str:
    if not recent_logs:
        return "No recent daily logs available"

    total = sum(log.get("calculatedDailyCarbonFootprint") or 0 for log in recent_logs)
    transport_modes = Counter()
    diet_types = Counter()
    for log in recent_logs:
        answers = log.get("answers") or {}
        mode = (answers.get("transport") or {}).get("mode")
        diet_type = (answers.get("diet") or {}).get("dietType")
        if mode:
            transport_modes[mode] += 1
        if diet_type:
            diet_types[diet_type] += 1

    patterns = [f"Average daily carbon: {total / len(recent_logs):.1f} kg CO2e over {len(recent_logs)} log(s)"]
    if transport_modes:
        patterns.append(f"Transport patterns: {json.dumps(dict(transport_modes))}")
    if diet_types:
        patterns.append(f"Diet patterns: {json.dumps(dict(diet_types))}")
    return ". ".join(patterns)


def build_challenge_prompt(profile: Optional[dict], recent_logs: List[dict], footprint: Optional[CarbonBreakdown]) -> str:
    profile = profile or {}
    total = footprint.total if footprint and footprint.total else DEFAULT_PROMPT_FOOTPRINT
    breakdown = footprint.model_dump(exclude={"total"}) if footprint else {}

    prompt = CHALLENGE_GENERATION_PROMPT.replace('{transport_placeholder}', _to_json(profile.get("transport")))
    prompt = prompt.replace('{diet_placeholder}', _to_json(profile.get("diet")))
    prompt = prompt.replace('{electricity_placeholder}', _to_json(profile.get("electricity")))
    prompt = prompt.replace('{lifestyle_placeholder}', _to_json(profile.get("lifestyle")))
    prompt = prompt.replace('{footprint_placeholder}', f"{total:.2f}")
    prompt = prompt.replace('{category_placeholder}', carbon_category(total))
    prompt = prompt.replace('{breakdown_placeholder}', _to_json(breakdown))
    prompt = prompt.replace('{recent_activity_placeholder}', summarize_recent_logs(recent_logs))
    return prompt


def _materialize(raw_challenges: List[dict], prefix: str, now: datetime.datetime) -> List[dict]:
    stamp = int(now.timestamp() * 1000)
    challenges = []
    for index, raw in enumerate(raw_challenges):
        try:
            challenge = PersonalizedChallenge.model_validate({
                **raw,
                "challengeId": f"{prefix}_{stamp}_{index}",
                "startDate": now,
                "endDate": now + datetime.timedelta(days=raw.get("duration") or 7),
            })
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding malformed generated challenge #{index}: {e}")
            continue
        challenges.append(challenge.model_dump(mode="json"))
    return challenges


def parse_challenge_response(text: Optional[str], now: datetime.datetime) -> List[dict]:
    """
    Extracts the challenge list from a model response. Markdown fences and
    surrounding prose are tolerated; anything else raises ExternalServiceError.
    """
    if not text:
        raise ExternalServiceError("Empty response from Gemini")

    cleaned = text.strip().replace("```json", "").replace("```", "")
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise ExternalServiceError("No JSON object found in Gemini response")

    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse Gemini response as JSON: {e}")
        logger.debug(f"Raw response: {text}")
        raise ExternalServiceError("Gemini returned malformed JSON") from e

    raw_challenges = parsed.get("challenges") if isinstance(parsed, dict) else None
    if not isinstance(raw_challenges, list):
        raise ExternalServiceError("Gemini response has no challenge list")

    challenges = _materialize(raw_challenges, "personalized", now)
    if not challenges:
        raise ExternalServiceError("Gemini response contained no usable challenges")
    return challenges


def get_fallback_challenges(now: datetime.datetime) -> List[dict]:
    return _materialize([{**challenge, "duration": 7} for challenge in FALLBACK_CHALLENGES], "fallback", now)


class GeminiService:
    """
    Calls Gemini with a bounded timeout, rotating through the configured API
    keys. The index of the last key that worked is kept in Redis so every
    process starts from a known-good key.
    """

    def __init__(
        self,
        api_keys: List[str],
        redis_client=None,
        model: str = DEFAULT_MODEL,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_attempts: int = 2,
        client_factory: Callable = genai.Client,
    ):
        self.api_keys = [key for key in api_keys if key]
        self.redis_client = redis_client
        self.model = model
        self.timeout_ms = timeout_ms
        self.max_attempts = max_attempts
        self.client_factory = client_factory

    def _current_key_index(self) -> int:
        if not self.redis_client:
            return 0
        try:
            return int(self.redis_client.get(KEY_INDEX_REDIS_KEY) or 0)
        except (redis.exceptions.RedisError, ValueError) as e:
            logger.warning(f"Could not read Gemini key index from Redis: {e}")
            return 0

    def _store_key_index(self, index: int) -> None:
        if not self.redis_client:
            return
        try:
            self.redis_client.set(KEY_INDEX_REDIS_KEY, index)
        except redis.exceptions.RedisError as e:
            logger.warning(f"Could not store Gemini key index in Redis: {e}")

    def generate(self, prompt: str) -> str:
        if not self.api_keys:
            raise ExternalServiceError("No Gemini API keys configured")

        start_index = self._current_key_index()
        last_error = None
        for attempt in range(self.max_attempts):
            current_index = (start_index + attempt) % len(self.api_keys)
            try:
                logger.info(f"--> Trying Gemini API Key #{current_index + 1} (attempt {attempt + 1})")
                client = self.client_factory(
                    api_key=self.api_keys[current_index],
                    http_options=types.HttpOptions(timeout=self.timeout_ms),
                )
                response = client.models.generate_content(model=self.model, contents=[prompt])
                if not response.text:
                    raise ExternalServiceError("Empty response from Gemini")
                self._store_key_index(current_index)
                return response.text
            except Exception as e:
                logger.warning(f"Gemini API Key #{current_index + 1} failed. Error: {e}")
                last_error = e

        logger.error("All Gemini attempts have failed.")
        raise ExternalServiceError("Gemini generation failed", details={"attempts": self.max_attempts}) from last_error

    def generate_personalized_challenges(
        self,
        profile: Optional[dict],
        recent_logs: List[dict],
        footprint: Optional[CarbonBreakdown],
        now: datetime.datetime,
    ) -> List[dict]:
        prompt = build_challenge_prompt(profile, recent_logs, footprint)
        return parse_challenge_response(self.generate(prompt), now)

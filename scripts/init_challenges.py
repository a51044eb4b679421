import os
import sys
import logging
from dotenv import load_dotenv

# --- SETUP & CONFIG ---
# This allows the script to find other modules like logging_config
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from logging_config import setup_logging
from models import ChallengeDefinition

SEED_CHALLENGES = [
    {
        "challengeId": "meat_free_monday",
        "name": "Meat-Free Monday",
        "description": "Go vegetarian or vegan for a day!",
        "type": "diet",
        "criteria": {"dietType": ["vegetarian", "vegan"], "maxMeatPercentage": 0},
        "pointsAwarded": 20,
        "badgeAwarded": "Meat-Free Master",
    },
    {
        "challengeId": "ac_free_day",
        "name": "AC-Free Day",
        "description": "Keep your air conditioning off for a full day",
        "type": "electricity",
        "criteria": {"maxAcHours": 0},
        "pointsAwarded": 15,
        "badgeAwarded": "Energy Saver",
    },
    {
        "challengeId": "green_commute",
        "name": "Green Commute Challenge",
        "description": "Use eco-friendly transportation for your daily commute",
        "type": "transport",
        "criteria": {"mode": "cycling"},
        "pointsAwarded": 25,
        "badgeAwarded": "Green Commuter",
    },
    {
        "challengeId": "water_warrior",
        "name": "Water Warrior",
        "description": "Reduce water usage by taking shorter showers",
        "type": "water",
        "criteria": {"maxShowerMinutes": 5},
        "pointsAwarded": 10,
        "badgeAwarded": "Water Warrior",
    },
    {
        "challengeId": "daily_logger",
        "name": "Consistent Logger",
        "description": "Log your daily activities for a full week",
        "type": "lifestyle",
        "criteria": {"dailyLogging": True},
        "duration": 7,
        "pointsAwarded": 30,
        "badgeAwarded": "Carbon Tracker",
    },
]

def seed_challenges(repository) -> int:
    """Upserts the default challenge catalog. Safe to run on every deploy."""
    definitions = [ChallengeDefinition.model_validate(data) for data in SEED_CHALLENGES]
    for definition in definitions:
        repository.save_challenge(definition)
        logging.info(f"Seeded challenge {definition.challengeId}")
    return len(definitions)

def run_initial_setup():
    setup_logging()
    load_dotenv()

    from google.cloud import firestore
    from repository import FirestoreRepository

    # We must explicitly initialize the client in a standalone script
    repository = FirestoreRepository(firestore.Client())
    try:
        count = seed_challenges(repository)
        logging.info(f"{count} default challenges seeded successfully.")
        print(f"{count} default challenges seeded successfully.")
    except Exception as e:
        logging.error(f"Failed to seed default challenges during setup: {e}", exc_info=True)
        print(f"ERROR: Failed to seed default challenges. Check logs. Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    run_initial_setup()

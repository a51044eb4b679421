import os
import sys
import logging
import datetime
from dotenv import load_dotenv

# --- SETUP & CONFIG ---
# This allows the script to find other modules like logging_config
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from logging_config import setup_logging
from streak_tracker import expire_streak
from timezone_utils import APP_TZ, get_current_date

def reset_inactive_streaks(repository, ledger, today: datetime.date) -> int:
    """
    Zeroes the streak of every user who logged neither today nor yesterday,
    keeping their best streak. Designed to run once per day via cron.
    """
    updates = {}
    for user_id, profile in repository.iter_active_streaks():
        fields = expire_streak(profile, today)
        if fields:
            logging.info(f"User {user_id} streak will be reset. Last log: {profile.lastLogDate}")
            updates[user_id] = fields

    repository.commit_gamification_updates(updates)
    for user_id in updates:
        ledger.invalidate(user_id)
    return len(updates)

def main():
    setup_logging()
    load_dotenv()

    from dependencies import db, get_redis_connection
    from gamification_ledger import GamificationLedger
    from repository import FirestoreRepository

    repository = FirestoreRepository(db)
    ledger = GamificationLedger(repository, get_redis_connection())
    today = get_current_date()
    logging.info(f"Timezone: {APP_TZ.zone}. Resetting streaks with no log since before {today - datetime.timedelta(days=1)}")

    try:
        reset_count = reset_inactive_streaks(repository, ledger, today)
    except Exception as e:
        logging.error(f"An error occurred during the streak reset process: {e}", exc_info=True)
        print("Failure: An error occurred. Check the log file for details.")
        sys.exit(1)

    if reset_count == 0:
        logging.info("Process complete. No user streaks needed to be reset.")
        print("Success: No user streaks needed to be reset.")
    else:
        logging.info(f"Successfully reset the streak for {reset_count} users.")
        print(f"Success: Reset streak for {reset_count} users.")

# This makes the script runnable from the command line
if __name__ == '__main__':
    main()

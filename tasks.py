import logging

from celery_worker import celery_app
from logging_config import setup_logging

# --- SETUP & CONFIG ---
setup_logging()

# --- LAZY INITIALIZED SERVICES ---
_services = None
def get_services():
    global _services
    if _services is None:
        from dependencies import build_services
        _services = build_services()
    return _services


@celery_app.task(bind=True, name="reconcile_user_task", max_retries=3, default_retry_delay=60)
def reconcile_user_task(self, user_id):
    """
    Recovers challenge progress, rewards and streak days lost by a failed
    submission, working from the user's retained daily logs. Safe to run any
    number of times.
    """
    logging.info(f"--- [RECONCILE] Starting reconciliation for user {user_id} ---")
    try:
        result = get_services().activity.reconcile_user(user_id)
        logging.info(f"--- [RECONCILE] Finished for user {user_id}: {result} ---")
        return result
    except Exception as e:
        logging.error(f"--- [RECONCILE] Failed for user {user_id}: {e}", exc_info=True)
        raise self.retry(exc=e)

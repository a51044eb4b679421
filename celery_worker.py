import os
from celery import Celery
from dotenv import load_dotenv

# --- CELERY WORKER INITIALIZATION ---

# 1. Load environment variables. This MUST happen before anything else.
load_dotenv()

# 2. Create the Celery app instance.
celery_app = Celery('tasks',
                    broker=os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
                    include=['tasks'])  # Tasks live in tasks.py

celery_app.conf.update(
    task_track_started=True,
    task_acks_late=True,
)

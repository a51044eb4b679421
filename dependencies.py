"""
Dependency injection container for the EcoTrack engine.
This module owns the process-wide Firestore, Redis and Gemini configuration
and wires the engine services on top of them. Importing it connects to Google
Cloud, so the engine modules themselves never import it.
"""

import logging
import os
import threading

import redis
from dotenv import load_dotenv
from google.cloud import firestore
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

load_dotenv()

# --- Google Cloud Clients ---
db = firestore.Client()

# --- Environment variables ---
REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')

# --- Gemini API Keys ---
GEMINI_API_KEYS = [os.environ.get(f"GEMINI_API_KEY_{i+1}") for i in range(4)]
ACTIVE_GEMINI_KEYS = [key for key in GEMINI_API_KEYS if key]
# Single-key deployments
if not ACTIVE_GEMINI_KEYS and os.environ.get("GEMINI_API_KEY"):
    ACTIVE_GEMINI_KEYS = [os.environ.get("GEMINI_API_KEY")]

# --- Redis Connection Pool with Retry Logic ---
# Thread-local storage for Redis connections
_redis_local = threading.local()

def get_redis_connection():
    """
    Get a thread-safe Redis connection from the pool with retry logic.
    Returns None when Redis is unreachable; every Redis use in the engine is
    optional and degrades to Firestore.
    """
    if not hasattr(_redis_local, 'connection'):
        try:
            retry = Retry(ExponentialBackoff(), retries=3)
            connection_pool = redis.ConnectionPool.from_url(
                REDIS_URL,
                decode_responses=True,
                retry=retry,
                max_connections=20,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=10
            )

            _redis_local.connection = redis.Redis(connection_pool=connection_pool)
            _redis_local.connection.ping()
            logging.info("Redis connection pool initialized successfully")

        except redis.exceptions.RedisError as e:
            logging.error(f"Failed to connect to Redis: {e}")
            _redis_local.connection = None

    return _redis_local.connection


def build_services():
    """Wires the engine services against Firestore, Redis and Gemini."""
    from activity_service import ActivityService
    from challenge_cache import ChallengeCacheService
    from challenge_engine import ChallengeProgressEngine
    from extensions import EngineServices
    from gamification_ledger import GamificationLedger
    from gemini_service import GeminiService
    from repository import FirestoreRepository
    from tasks import reconcile_user_task

    redis_client = get_redis_connection()
    repository = FirestoreRepository(db)
    ledger = GamificationLedger(repository, redis_client)
    challenges = ChallengeProgressEngine(repository, ledger)
    challenge_cache = ChallengeCacheService(repository, GeminiService(ACTIVE_GEMINI_KEYS, redis_client))
    activity = ActivityService(
        repository,
        ledger,
        challenges,
        challenge_cache,
        reconcile_dispatcher=reconcile_user_task.delay,
    )
    return EngineServices(repository, ledger, challenges, challenge_cache, activity)

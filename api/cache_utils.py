import logging

import redis

GAMIFICATION_CACHE_TTL_SECONDS = 300

def get_gamification_cache_key(user_id):
    """Generates the standard Redis key for a user's gamification summary."""
    return f"gamification_summary:{user_id}"

def get_cached_gamification(redis_client, user_id):
    """Returns the cached summary JSON, or None on a miss or a Redis outage."""
    if not redis_client or not user_id:
        return None
    try:
        return redis_client.get(get_gamification_cache_key(user_id))
    except redis.exceptions.RedisError as e:
        logging.warning(f"Redis read failed for {user_id}, falling back to Firestore: {e}")
        return None

def cache_gamification(redis_client, user_id, payload):
    if not redis_client or not user_id:
        return
    try:
        redis_client.setex(get_gamification_cache_key(user_id), GAMIFICATION_CACHE_TTL_SECONDS, payload)
    except redis.exceptions.RedisError as e:
        logging.warning(f"Redis write failed for {user_id}: {e}")

def invalidate_gamification_cache(redis_client, user_id):
    """Deletes a user's gamification summary from the Redis cache."""
    if not redis_client or not user_id:
        return
    try:
        redis_client.delete(get_gamification_cache_key(user_id))
    except redis.exceptions.RedisError as e:
        logging.warning(f"Redis invalidation failed for {user_id}: {e}")

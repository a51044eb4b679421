from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    # Passed to the Redis client so responses come back as strings.
    storage_options={"decode_responses": True},
    # Storage URI is set from REDIS_URL in main.create_app().
    default_limits=["1000 per day", "300 per hour"]
)

SERVICES_KEY = "ecotrack"


class EngineServices:
    """The engine's collaborators, wired once per process and shared by every request."""

    def __init__(self, repository, ledger, challenges, challenge_cache, activity):
        self.repository = repository
        self.ledger = ledger
        self.challenges = challenges
        self.challenge_cache = challenge_cache
        self.activity = activity


def engine_services() -> EngineServices:
    return current_app.extensions[SERVICES_KEY]

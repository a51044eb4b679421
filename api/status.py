import os
import datetime
from flask import Blueprint, request, render_template_string

from extensions import engine_services
from timezone_utils import APP_TZ

status_bp = Blueprint('status_bp', __name__)

# --- Helper Check Functions ---

def check_firestore(repository):
    """Checks if we can reach Firestore with a minimal read."""
    try:
        repository.healthcheck()
        return {"status": "OK", "details": "Successfully read from Firestore."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to connect to Firestore: {str(e)}"}

def check_redis(redis_client):
    """Checks if the Redis server is responsive."""
    if not redis_client:
        return {"status": "ERROR", "details": "Redis client is not configured."}
    try:
        redis_client.ping()
        return {"status": "OK", "details": "Ping successful."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to ping Redis server: {str(e)}"}

def check_gemini_keys(generator):
    """Checks that at least one Gemini API key is configured. Makes no API call."""
    keys = getattr(generator, 'api_keys', None)
    if not keys:
        return {"status": "ERROR", "details": "No GEMINI_API_KEY environment variables found."}
    return {"status": "OK", "details": f"{len(keys)} Gemini API key(s) configured, model {generator.model}."}

def check_celery():
    """Checks if there are active Celery workers."""
    try:
        from celery_worker import celery_app
        active_workers = celery_app.control.inspect(timeout=2).ping()
        if not active_workers:
            return {"status": "ERROR", "details": "No active Celery workers found. The worker service may be down."}

        worker_names = ", ".join(active_workers.keys())
        return {"status": "OK", "details": f"Found {len(active_workers)} active worker(s): {worker_names}"}
    except Exception as e:
        return {"status": "ERROR", "details": f"Could not connect to Celery broker. Error: {str(e)}"}

def check_challenge_usage(challenge_cache):
    """Reports how many AI challenge generations the cache has paid for."""
    try:
        stats = challenge_cache.get_api_usage_stats()
        return {
            "status": "OK",
            "details": (
                f"{stats['totalApiCalls']} generation call(s) across {stats['totalUsers']} user(s), "
                f"{stats['averageCallsPerUser']:.1f} per user."
            ),
        }
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to read challenge cache usage: {str(e)}"}

# --- HTML Template ---
STATUS_PAGE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>EcoTrack Engine Status</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; margin: 0; background-color: #f4f7f6; }
        .container { max-width: 800px; margin: 2rem auto; padding: 1rem; background: white; border-radius: 8px; }
        .status-table { width: 100%; border-collapse: collapse; margin-top: 1rem; }
        .status-table th, .status-table td { padding: 0.75rem; text-align: left; border-bottom: 1px solid #eee; }
        .ok { color: #28a745; font-weight: 700; }
        .error { color: #dc3545; font-weight: 700; }
    </style>
</head>
<body>
    <div class="container">
        <h1>EcoTrack Engine Status</h1>
        <p>Last checked: {{ timestamp }}</p>
        <table class="status-table">
            <thead><tr><th>Service</th><th>Status</th><th>Details</th></tr></thead>
            <tbody>
                {% for name, result in checks.items() %}
                <tr>
                    <td><strong>{{ name }}</strong></td>
                    <td class="{{ 'ok' if result.status == 'OK' else 'error' }}">{{ result.status }}</td>
                    <td>{{ result.details }}</td>
                </tr>
                {% endfor %}
            </tbody>
        </table>
    </div>
</body>
</html>
"""

# --- Main Endpoint ---
@status_bp.route('/status')
def system_status():
    status_secret_key = os.environ.get("STATUS_SECRET_KEY")

    # Secured with a secret key passed as a query parameter
    secret = request.args.get('secret')
    if not status_secret_key or secret != status_secret_key:
        return "Unauthorized", 401

    services = engine_services()
    all_checks = {
        "Firestore Database": check_firestore(services.repository),
        "Redis Cache": check_redis(services.ledger.redis_client),
        "Gemini AI API": check_gemini_keys(services.challenge_cache.generator),
        "Challenge Generation Usage": check_challenge_usage(services.challenge_cache),
        "Celery Workers": check_celery(),
    }

    timestamp = datetime.datetime.now(APP_TZ).strftime('%Y-%m-%d %H:%M:%S %Z')

    return render_template_string(STATUS_PAGE_TEMPLATE, checks=all_checks, timestamp=timestamp)

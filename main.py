# Run with: gunicorn "main:create_app()"

import os
import logging
from flask import Flask, jsonify
from dotenv import load_dotenv
from pydantic import ValidationError
from logging_config import setup_logging
from extensions import SERVICES_KEY, limiter
from api.error_utils import EngineError, engine_error_response, handle_exception, validation_error

# --- SETUP & CONFIG ---
# Load environment variables for the Flask app process.
load_dotenv()
setup_logging()


def create_app(services=None, config=None):
    """
    Builds the Flask app. `services` defaults to the Firestore-backed wiring in
    dependencies.build_services(); tests pass their own.
    """
    app = Flask(__name__)
    app.config.update(RATELIMIT_STORAGE_URI=os.environ.get('REDIS_URL', 'memory://'))
    if config:
        app.config.update(config)

    # --- Initialize Extensions ---
    limiter.init_app(app)

    if services is None:
        from dependencies import build_services
        services = build_services()
    app.extensions[SERVICES_KEY] = services

    # --- Import and Register Blueprints ---
    from api.daily_logs import daily_logs_bp
    from api.gamification import gamification_bp
    from api.challenges import challenges_bp
    from api.status import status_bp

    app.register_blueprint(daily_logs_bp, url_prefix='/daily-logs')
    app.register_blueprint(gamification_bp, url_prefix='/gamification')
    app.register_blueprint(challenges_bp, url_prefix='/challenges')
    app.register_blueprint(status_bp, url_prefix='/')

    register_error_handlers(app)
    return app


# --- Global Error Handlers ---
def register_error_handlers(app):

    @app.errorhandler(EngineError)
    def handle_engine_error(e):
        return engine_error_response(e)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return validation_error(details={"errors": e.errors(include_url=False, include_context=False, include_input=False)})

    @app.errorhandler(404)
    def resource_not_found(e):
        """Handles 404 Not Found errors for a clean API response."""
        return jsonify(error_code="NOT_FOUND", message="The requested resource was not found."), 404

    @app.errorhandler(500)
    def internal_server_error(e):
        """Handles unexpected 500 Internal Server Errors for a clean API response."""
        logging.critical(f"An unhandled exception occurred: {e}", exc_info=True)
        return handle_exception(getattr(e, 'original_exception', None) or e, context="request")


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 8080)))

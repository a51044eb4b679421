"""
Standardized error handling for the EcoTrack engine and its API endpoints.
Defines the engine's exception taxonomy and maps each exception onto a
consistent error code, HTTP status and JSON envelope.
"""

import logging
from flask import jsonify
from typing import Dict, Any, Optional

# Standard error codes for consistent API responses
ERROR_CODES = {
    # Identity errors
    "USER_MISSING": "Request is missing the authenticated user id",

    # Validation errors
    "VALIDATION_ERROR": "Request validation failed",

    # Resource errors
    "NOT_FOUND": "Resource not found",
    "CHALLENGE_NOT_FOUND": "Challenge not found",
    "ENROLLMENT_NOT_FOUND": "Not participating in this challenge",
    "CONFLICT": "Request conflicts with the current state of the resource",

    # System errors
    "SERVER_ERROR": "Internal server error",
    "DATABASE_ERROR": "Database operation failed",
    "EXTERNAL_SERVICE_ERROR": "External service unavailable",
}


class EngineError(Exception):
    """Base class for errors raised by the scoring and progression engine."""
    error_code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or ERROR_CODES.get(self.error_code, "")
        self.details = details
        super().__init__(self.message)


class RequestValidationError(EngineError):
    """A required field is missing or malformed. Raised before any mutation."""
    error_code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(EngineError):
    error_code = "NOT_FOUND"
    status_code = 404


class ChallengeNotFoundError(NotFoundError):
    error_code = "CHALLENGE_NOT_FOUND"


class EnrollmentNotFoundError(NotFoundError):
    error_code = "ENROLLMENT_NOT_FOUND"


class ConflictError(EngineError):
    error_code = "CONFLICT"
    status_code = 409


class ExternalServiceError(EngineError):
    """Generative service call failed, timed out or returned an unusable payload."""
    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502


class StorageWriteError(EngineError):
    """A write to the document store failed."""
    error_code = "DATABASE_ERROR"
    status_code = 500


def create_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status_code: int = 500
) -> tuple:
    """
    Create a standardized error response with consistent format.

    Args:
        error_code: One of the standard ERROR_CODES keys
        message: Optional custom message (defaults to standard message)
        details: Optional additional error details
        status_code: HTTP status code

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    if error_code not in ERROR_CODES:
        logging.warning(f"Unknown error code used: {error_code}")
        error_code = "SERVER_ERROR"

    error_message = message or ERROR_CODES[error_code]

    response_data = {
        "error_code": error_code,
        "message": error_message
    }

    if details:
        response_data["details"] = details

    logging.error(f"API Error [{error_code}]: {error_message} - Status: {status_code}")

    return jsonify(response_data), status_code

def engine_error_response(e: EngineError) -> tuple:
    return create_error_response(e.error_code, e.message, e.details, status_code=e.status_code)

def handle_exception(e: Exception, context: str = "API endpoint") -> tuple:
    """
    Handle unexpected exceptions with standardized error response.
    """
    error_type = type(e).__name__
    error_message = str(e)

    logging.error(f"Unexpected error in {context}: {error_type} - {error_message}", exc_info=True)

    return create_error_response(
        error_code="SERVER_ERROR",
        message="An unexpected error occurred",
        details={"error_type": error_type},
        status_code=500
    )

def validation_error(message: Optional[str] = None, details: Optional[Dict] = None) -> tuple:
    return create_error_response("VALIDATION_ERROR", message, details, status_code=400)

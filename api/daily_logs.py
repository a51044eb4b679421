import logging
from flask import Blueprint, request, jsonify

from .auth import user_required
from .error_utils import NotFoundError
from .pydantic_models import DailyLogRequest
from extensions import engine_services, limiter

daily_logs_bp = Blueprint('daily_logs_bp', __name__)

@daily_logs_bp.route('', methods=['POST'])
@user_required
@limiter.limit("60 per hour")
def submit_daily_log(user_id):
    req_data = DailyLogRequest.model_validate(request.get_json(silent=True) or {})
    result = engine_services().activity.submit_daily_activity(
        user_id,
        req_data.date,
        req_data.answers,
        steps=req_data.steps,
        distance=req_data.distance,
        calories_burned=req_data.caloriesBurned,
    )
    logging.info(f"Daily log {result['date']} submitted by {user_id}")
    return jsonify({"message": "Daily log submitted", **result}), 200

@daily_logs_bp.route('/weekly-summary', methods=['GET'])
@user_required
def get_weekly_summary(user_id):
    summary = engine_services().activity.get_weekly_summary(user_id)
    count = summary['totalDays']
    summary['message'] = (
        "No daily logs found for the past week" if count == 0
        else f"Found {count} daily log(s) for the past week"
    )
    return jsonify({"weeklySummary": summary}), 200

@daily_logs_bp.route('/<log_date>', methods=['GET'])
@user_required
def get_daily_log(user_id, log_date):
    log = engine_services().activity.get_daily_log(user_id, log_date)
    if log is None:
        raise NotFoundError(f"No log found for {log_date}")
    return jsonify(log), 200

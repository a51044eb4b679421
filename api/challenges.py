import logging
from flask import Blueprint, jsonify

from .auth import user_required
from .pydantic_models import MyChallengesResponse, PersonalizedChallengesResponse
from extensions import engine_services, limiter

challenges_bp = Blueprint('challenges_bp', __name__)

@challenges_bp.route('/mine', methods=['GET'])
@user_required
def get_my_challenges(user_id):
    listing = engine_services().challenges.list_enrollments(user_id)
    response = MyChallengesResponse.model_validate(listing)
    return jsonify(response.model_dump(mode='json')), 200

@challenges_bp.route('/<challenge_id>/membership', methods=['POST'])
@user_required
@limiter.limit("30 per hour")
def join_challenge(user_id, challenge_id):
    enrollment = engine_services().challenges.join(user_id, challenge_id)
    return jsonify({
        "message": "Successfully joined challenge",
        "challenge": enrollment.model_dump(mode='json'),
    }), 201

@challenges_bp.route('/<challenge_id>/membership', methods=['DELETE'])
@user_required
def leave_challenge(user_id, challenge_id):
    engine_services().challenges.leave(user_id, challenge_id)
    return jsonify({"message": "Successfully left challenge", "challengeId": challenge_id}), 200

@challenges_bp.route('/personalized', methods=['GET'])
@user_required
def get_personalized_challenges(user_id):
    result = engine_services().activity.get_personalized_challenges(user_id)
    return jsonify(PersonalizedChallengesResponse.model_validate(result).model_dump()), 200

@challenges_bp.route('/personalized/refresh', methods=['POST'])
@user_required
@limiter.limit("5 per day")
def refresh_personalized_challenges(user_id):
    logging.info(f"User {user_id} requested fresh personalized challenges")
    result = engine_services().activity.refresh_challenges(user_id)
    return jsonify(PersonalizedChallengesResponse.model_validate(result).model_dump()), 200

from flask import Blueprint, jsonify

from .auth import user_required
from extensions import engine_services

gamification_bp = Blueprint('gamification_bp', __name__)

@gamification_bp.route('', methods=['GET'])
@user_required
def get_gamification(user_id):
    profile = engine_services().ledger.read(user_id)
    return jsonify(profile.model_dump(mode='json')), 200

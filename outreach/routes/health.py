"""
Health routes — liveness and channel circuit breaker state.
"""
from flask import Blueprint, jsonify

from outreach.config import CHANNELS
from outreach.services.circuit_breaker import get_breaker, get_health

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def api_health():
    return jsonify({'channels': get_health()})


@bp.route('/api/health/<channel>/reset', methods=['POST'])
def reset_channel(channel):
    if channel not in CHANNELS:
        return jsonify({'error': f'Unknown channel: {channel}'}), 404
    get_breaker(channel).reset()
    return jsonify({'ok': True, 'channel': channel})

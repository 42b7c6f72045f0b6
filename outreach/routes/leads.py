"""
Lead routes — engagement webhooks and operator actions on one lead.
"""
from flask import Blueprint, request, jsonify

from outreach.lifecycle.base import (
    ConfigurationError, InvalidChannelError, LeadBusyError, LeadNotFoundError,
    LeadStateError, UnknownEventError,
)
from outreach.services import lifecycle

bp = Blueprint('leads', __name__, url_prefix='/api/leads')


@bp.errorhandler(LeadNotFoundError)
def _not_found(e):
    return jsonify({'error': str(e)}), 404


@bp.errorhandler(UnknownEventError)
@bp.errorhandler(InvalidChannelError)
@bp.errorhandler(ConfigurationError)
def _bad_request(e):
    return jsonify({'error': str(e)}), 400


@bp.errorhandler(LeadBusyError)
@bp.errorhandler(LeadStateError)
def _conflict(e):
    return jsonify({'error': str(e)}), 409


def _body():
    return request.get_json(silent=True) or {}


def _int(value, name):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be an integer")


@bp.route('/<int:lead_id>/score', methods=['POST'])
def score_event(lead_id):
    """Apply an engagement event: {"event": "email_opened", "bonus_points": 0}."""
    data = _body()
    event = data.get('event')
    if not event:
        return jsonify({'error': "'event' is required"}), 400
    try:
        bonus = _int(data.get('bonus_points'), 'bonus_points')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(lifecycle.record_event(lead_id, event, bonus))


@bp.route('/<int:lead_id>/reply', methods=['POST'])
def inbound_reply(lead_id):
    data = _body()
    channel = lifecycle.validate_channel(data.get('channel', 'sms'))
    return jsonify(lifecycle.record_reply(lead_id, channel, data.get('content', '')))


@bp.route('/<int:lead_id>/opt-out', methods=['POST'])
def opt_out(lead_id):
    channel = lifecycle.validate_channel(_body().get('channel', 'sms'))
    return jsonify(lifecycle.record_opt_out(lead_id, channel))


@bp.route('/<int:lead_id>/call-outcome', methods=['POST'])
def call_outcome(lead_id):
    data = _body()
    status = data.get('status')
    if not status:
        return jsonify({'error': "'status' is required"}), 400
    try:
        duration = _int(data.get('duration_seconds'), 'duration_seconds')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(lifecycle.record_call_outcome(
        lead_id,
        status=status,
        outcome=data.get('outcome'),
        duration_seconds=duration,
        summary=data.get('summary'),
        interest_level=data.get('interest_level'),
        next_action=data.get('next_action'),
    ))


@bp.route('/<int:lead_id>/pause', methods=['POST'])
def pause(lead_id):
    return jsonify(lifecycle.pause_sequence(lead_id))


@bp.route('/<int:lead_id>/resume', methods=['POST'])
def resume(lead_id):
    return jsonify(lifecycle.resume_sequence(lead_id))


@bp.route('/<int:lead_id>/mark-qualified', methods=['POST'])
def mark_qualified(lead_id):
    return jsonify(lifecycle.mark_qualified(lead_id))


@bp.route('/<int:lead_id>/mark-dnc', methods=['POST'])
def mark_dnc(lead_id):
    return jsonify(lifecycle.mark_dnc(lead_id))


@bp.route('/<int:lead_id>/activities')
def activities(lead_id):
    try:
        limit = min(max(int(request.args.get('limit', 100)), 1), 500)
    except ValueError:
        return jsonify({'error': "'limit' must be an integer"}), 400
    return jsonify({'lead_id': lead_id, 'activities': lifecycle.get_activities(lead_id, limit)})

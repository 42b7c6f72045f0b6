"""
Scheduler routes — manual tick, emergency pause/resume, status.
"""
from flask import Blueprint, jsonify

from outreach.services import lifecycle

bp = Blueprint('scheduler', __name__, url_prefix='/api/scheduler')


@bp.route('/run', methods=['POST'])
def run_now():
    """Run exactly one tick now. Honors the pause flag and the tick lock."""
    return jsonify(lifecycle.run_scheduler_now())


@bp.route('/pause', methods=['POST'])
def pause_system():
    return jsonify(lifecycle.set_system_paused(True))


@bp.route('/resume', methods=['POST'])
def resume_system():
    return jsonify(lifecycle.set_system_paused(False))


@bp.route('/status')
def status():
    return jsonify(lifecycle.get_scheduler_status())

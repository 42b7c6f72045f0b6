"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import importlib

from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from outreach.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    from outreach.routes.health import bp as health_bp
    from outreach.routes.leads import bp as leads_bp
    from outreach.routes.scheduler import bp as scheduler_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(scheduler_bp)

    # One circuit breaker per outbound channel
    from outreach.extensions import get_redis
    from outreach.services.circuit_breaker import init_channel_breakers
    init_channel_breakers(get_redis())

    # Fail at startup, not on the first webhook, if the scoring table is malformed
    from outreach.lifecycle.scoring import load_scoring_config
    load_scoring_config()

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic; no create_all() call.
    for name in ('lead', 'sequence', 'activity', 'suppression', 'system_setting', 'call_log'):
        importlib.import_module(f'outreach.models.{name}')

    return app

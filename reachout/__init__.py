import logging
import os

from flask import Flask
from reachout.extensions import db, migrate, cors
from reachout.clock import SystemClock
from reachout.constants import DEFAULT_TIMEZONE, DONATION_COOLDOWN_DAYS, MAX_RADIUS_KM
from reachout.services.match_coordinator import MatchCoordinator
from reachout.services.notifier import WebhookNotifier

# Models must be imported before the mappers are configured
from reachout.models import availability_model, blood_request_model, donation_record_model  # noqa: F401
from reachout.models import donor_match_model, donor_model  # noqa: F401

# Import controllers (blueprints) for each module
from reachout.controllers.availability_controller import availability_bp
from reachout.controllers.blood_request_controller import blood_request_bp
from reachout.controllers.donor_controller import donor_bp
from reachout.controllers.donor_match_controller import donor_match_bp


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


def create_app(test_config=None, clock=None, notifier=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Configuration, overridable from the environment
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'mysql+pymysql://root:@localhost/reachout')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'your_secret_key')
    app.config['DONATION_COOLDOWN_DAYS'] = _env_int('DONATION_COOLDOWN_DAYS', DONATION_COOLDOWN_DAYS)
    app.config['MAX_PENDING_CANDIDACIES'] = _env_int('MAX_PENDING_CANDIDACIES', 3)
    app.config['FAIRNESS_WINDOW_DAYS'] = _env_int('FAIRNESS_WINDOW_DAYS', 30)
    app.config['MAX_SEARCH_RADIUS_KM'] = _env_int('MAX_SEARCH_RADIUS_KM', MAX_RADIUS_KM)
    app.config['SCHEDULE_LOOKAHEAD_DAYS'] = _env_int('SCHEDULE_LOOKAHEAD_DAYS', 90)
    app.config['SCHEDULE_STEP_MINUTES'] = _env_int('SCHEDULE_STEP_MINUTES', 1)
    app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', DEFAULT_TIMEZONE)
    app.config['NOTIFICATION_WEBHOOK_URL'] = os.environ.get('NOTIFICATION_WEBHOOK_URL')
    app.config['NOTIFICATION_TIMEOUT'] = _env_int('NOTIFICATION_TIMEOUT', 5)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    cors.init_app(app)

    clock = clock or SystemClock()
    notifier = notifier or WebhookNotifier(app.config['NOTIFICATION_WEBHOOK_URL'],
                                           timeout=app.config['NOTIFICATION_TIMEOUT'])
    app.extensions['reachout_clock'] = clock
    app.extensions['match_coordinator'] = MatchCoordinator(clock, notifier)

    # Register Blueprints with appropriate URL prefixes
    app.register_blueprint(availability_bp, url_prefix='/api/v1/availability')
    app.register_blueprint(donor_bp, url_prefix='/api/v1')
    app.register_blueprint(blood_request_bp, url_prefix='/api/v1/bloodrequests')
    app.register_blueprint(donor_match_bp, url_prefix='/api/v1/donormatches')

    return app


# Ensure the app runs only if this script is executed directly
if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)

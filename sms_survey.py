"""SMS survey system for collecting daily wellbeing data."""

import logging

import click
from flask import Flask, jsonify
from flask_cors import CORS
from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from admin_routes import admin
from config import Config
from database import Database, seed_sample_data
from errors import PersistenceError, SurveyError
from models import db
from routes import api
from scheduler_service import SchedulerService
from sms_service import SMSService
from survey_engine import SurveyEngine
from webhook_routes import webhooks

logger = logging.getLogger(__name__)


def create_app(config_object=Config, sms_service=None, clock=None):
    """
    Build the Flask app and wire its services.

    Every service is constructed once here and handed to the code that
    uses it; blueprints reach them through ``app.extensions``.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    CORS(app)

    database = Database(db)
    sms_service = sms_service or SMSService(app.config)
    engine = SurveyEngine(
        database,
        sms_service,
        timezone_name=app.config['SURVEY_TIMEZONE'],
        base_url=app.config['BASE_URL'],
        send_delay=app.config['SMS_SEND_DELAY_SECONDS'],
        clock=clock
    )
    scheduler = SchedulerService(
        app,
        engine,
        timezone_name=app.config['SURVEY_TIMEZONE'],
        hour=app.config['SURVEY_HOUR'],
        minute=app.config['SURVEY_MINUTE'],
        log_retention_days=app.config['LOG_RETENTION_DAYS'],
        clock=clock
    )

    app.extensions['survey_database'] = database
    app.extensions['survey_engine'] = engine
    app.extensions['survey_scheduler'] = scheduler

    app.register_blueprint(api, url_prefix='/api')
    app.register_blueprint(admin, url_prefix='/api/admin')
    app.register_blueprint(webhooks, url_prefix='/api/webhooks')

    register_error_handlers(app)
    register_commands(app)

    @app.route('/')
    def index():
        return jsonify({
            'message': 'Daily SMS Survey System',
            'version': '1.0',
            'endpoints': {
                'api': '/api - Users, campaigns and responses',
                'admin': '/api/admin - Admin endpoints (bearer token)',
                'webhooks': '/api/webhooks/twilio - Twilio webhooks'
            },
            'status': 'running'
        })

    @app.route('/health')
    def health():
        return jsonify({'status': 'healthy', 'timestamp': engine.now().isoformat()})

    return app


def register_error_handlers(app):
    @app.errorhandler(SurveyError)
    def handle_survey_error(e):
        return jsonify({'success': False, 'error': e.message}), e.status_code

    @app.errorhandler(SchemaError)
    def handle_schema_error(e):
        details = []
        for error in e.errors():
            location = '.'.join(str(part) for part in error['loc'])
            details.append(f"{location}: {error['msg']}" if location else error['msg'])
        return jsonify({'success': False, 'error': '; '.join(details)}), 400

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        logger.error(f"Database error: {e}")
        return handle_survey_error(PersistenceError('Database error'))


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create tables and indexes."""
        app.extensions['survey_database'].init_schema()
        click.echo('Database initialized successfully')

    @app.cli.command('seed-db')
    def seed_db_command():
        """Create sample users, a campaign and responses."""
        database = app.extensions['survey_database']
        database.init_schema()
        created = seed_sample_data(database, app.extensions['survey_engine'].today())
        click.echo('Sample data created' if created else 'Sample data already present')

    @app.cli.command('send-surveys')
    def send_surveys_command():
        """Run the daily survey pass now."""
        result = app.extensions['survey_engine'].send_daily_surveys()
        click.echo(f"{result.sent} sent, {result.failed} failed, {result.skipped} skipped")


def main():
    """Main application entry point"""
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = create_app()

    # Create database tables
    with app.app_context():
        app.extensions['survey_database'].init_schema()

    scheduler_service = app.extensions['survey_scheduler']

    try:
        if app.config['ENABLE_SCHEDULER']:
            scheduler_service.start_scheduler()

        port = app.config['PORT']
        debug = app.config.get('DEBUG', False)

        logger.info(f"Starting Flask application on port {port}")
        # the reloader would start a second scheduler in the child process
        app.run(host='0.0.0.0', port=port, debug=debug, use_reloader=False)

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        scheduler_service.stop_scheduler()


if __name__ == '__main__':
    main()

# ==============================================================================
# staxreports/__init__.py
# ------------------------------------------------------------------------------
# Application factory for creating and configuring the Flask app instance.
# ==============================================================================

import os
import logging
from datetime import datetime, timezone

from flask import Flask
from config import Config
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize extensions globally to be accessible by other modules
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    """
    Application factory function. Creates and configures the Flask application.

    Args:
        config_class (class): The configuration class to use.

    Returns:
        Flask: The configured Flask application instance.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    # Configure logging
    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'),
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Ensure the instance folder exists for the SQLite database
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions with the application instance
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints with the application
    from staxreports.api import bp as api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    @app.cli.command("seed")
    def seed():
        """Seeds the database with the built-in report presets."""
        from staxreports.seed import seed_data
        seed_data()
        app.logger.info("Database has been seeded with built-in presets.")

    @app.cli.command("run-scheduled-reports")
    def run_scheduled_reports():
        """Runs one scheduler tick: every due scheduled report is executed."""
        from staxreports.scheduling.runner import build_runner
        result = build_runner().run_tick(datetime.now(timezone.utc).replace(tzinfo=None))
        app.logger.info(f"Scheduled report tick finished: {result.as_dict()}")

    @app.cli.command("sync-records")
    def sync_records():
        """Pulls application decisions from Salesforce into the local store."""
        from staxreports.sync.service import build_session, sync_application_decisions
        with build_session() as salesforce:
            outcome = sync_application_decisions(salesforce)
        app.logger.info(f"Record sync finished: {outcome}")

    app.logger.info('Stax reporting service startup complete')

    return app

# ==============================================================================
# config.py
# ------------------------------------------------------------------------------
# Configuration settings for the reporting service.
# Uses environment variables for secrets so they stay out of version control.
# ==============================================================================

import os
from dotenv import load_dotenv

# Determine the absolute path of the project directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load environment variables from a .env file located in the project root
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    """
    Base configuration class. Contains default settings that can be overridden
    by environment-specific configurations.
    """
    # --- Security ---
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-should-really-set-a-secret-key-in-your-env-file'

    # Shared secret the external cron trigger sends as a bearer token.
    # When empty the cron endpoints are open (local development only).
    CRON_SECRET = os.environ.get('CRON_SECRET') or ''

    # --- Database Configuration ---
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance/reports.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # --- Scheduled reports ---
    # Number of due schedules executed in parallel within one tick.
    SCHEDULER_MAX_WORKERS = int(os.environ.get('SCHEDULER_MAX_WORKERS') or 4)

    # --- Email delivery (Resend HTTP API) ---
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY') or None
    RESEND_API_URL = os.environ.get('RESEND_API_URL') or 'https://api.resend.com/emails'
    REPORT_FROM_EMAIL = os.environ.get('REPORT_FROM_EMAIL') or 'reports@sherminfinance.co.uk'

    # Timeout (seconds) for every outbound HTTP call
    HTTP_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT') or 30)

    # --- Salesforce record source ---
    SALESFORCE_CLIENT_ID = os.environ.get('SALESFORCE_CLIENT_ID') or None
    SALESFORCE_CLIENT_SECRET = os.environ.get('SALESFORCE_CLIENT_SECRET') or None
    SALESFORCE_INSTANCE_URL = os.environ.get('SALESFORCE_INSTANCE_URL') or 'https://sherminmax.my.salesforce.com'
    SALESFORCE_API_VERSION = os.environ.get('SALESFORCE_API_VERSION') or 'v59.0'
    # Tokens last about two hours; refresh well before that.
    SALESFORCE_TOKEN_TTL = int(os.environ.get('SALESFORCE_TOKEN_TTL') or 3600)


class TestConfig(Config):
    """Configuration used by the test-suite: in-memory database, no threads."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CRON_SECRET = 'test-cron-secret'
    SCHEDULER_MAX_WORKERS = 1
    RESEND_API_KEY = None

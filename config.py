"""Configuration for the daily SMS survey service."""

import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name, default='false'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///survey.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SMS
    USE_MOCK_SMS = _env_bool('USE_MOCK_SMS')
    TWILIO_ACCOUNT_SID = os.getenv('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.getenv('TWILIO_AUTH_TOKEN')
    TWILIO_PHONE_NUMBER = os.getenv('TWILIO_PHONE_NUMBER')
    SMS_SEND_DELAY_SECONDS = float(os.getenv('SMS_SEND_DELAY_SECONDS', '0.1'))

    # Survey schedule
    BASE_URL = os.getenv('BASE_URL', 'http://localhost:5001')
    SURVEY_TIMEZONE = os.getenv('SURVEY_TIMEZONE', os.getenv('TIMEZONE', 'America/New_York'))
    SURVEY_HOUR = int(os.getenv('SURVEY_HOUR', '7'))
    SURVEY_MINUTE = int(os.getenv('SURVEY_MINUTE', '0'))
    LOG_RETENTION_DAYS = int(os.getenv('LOG_RETENTION_DAYS', '90'))
    ENABLE_SCHEDULER = _env_bool('ENABLE_SCHEDULER', 'true')

    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin123')
    DEFAULT_USER_TIMEZONE = 'America/New_York'

    DEBUG = os.getenv('FLASK_ENV') == 'development'
    PORT = int(os.getenv('PORT', '5001'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    USE_MOCK_SMS = True
    SMS_SEND_DELAY_SECONDS = 0
    ENABLE_SCHEDULER = False
    ADMIN_PASSWORD = 'test-admin'
    BASE_URL = 'http://survey.test'
    SURVEY_TIMEZONE = 'America/New_York'
    SURVEY_HOUR = 7
    SURVEY_MINUTE = 0

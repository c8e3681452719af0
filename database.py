"""Persistence gateway: schema creation plus thin statement helpers over the session."""

import logging
import sqlite3
from datetime import timedelta

from sqlalchemy import event, text
from sqlalchemy.engine import Engine

from models import db, User, Campaign, SurveyResponse, MessageLog

logger = logging.getLogger(__name__)


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


class StatementResult:
    def __init__(self, rowcount, lastrowid):
        self.changes = rowcount
        self.id = lastrowid


class Database:
    """
    Gateway over the Flask-SQLAlchemy session.

    Every write is committed on its own; nothing here wraps a
    multi-statement transaction.
    """

    def __init__(self, db=db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def init_schema(self):
        """Create tables and indexes that do not exist yet. Safe to call repeatedly."""
        self.db.create_all()
        logger.info("Database schema ready: users, campaigns, survey_responses, sms_logs")

    def execute(self, statement, params=None):
        result = self.session.execute(text(statement), params or {})
        self.session.commit()
        return StatementResult(result.rowcount, getattr(result, 'lastrowid', None))

    def fetch_one(self, statement, params=None):
        row = self.session.execute(text(statement), params or {}).mappings().first()
        return dict(row) if row is not None else None

    def fetch_many(self, statement, params=None):
        rows = self.session.execute(text(statement), params or {}).mappings().all()
        return [dict(row) for row in rows]

    def add(self, instance):
        self.session.add(instance)
        self.session.commit()
        return instance

    def delete(self, instance):
        self.session.delete(instance)
        self.session.commit()

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def count_responses(self, user_id=None, campaign_id=None):
        query = SurveyResponse.query
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        if campaign_id is not None:
            query = query.filter_by(campaign_id=campaign_id)
        return query.count()

    def purge_message_logs(self, before):
        deleted = MessageLog.query.filter(MessageLog.created_at < before).delete(
            synchronize_session=False
        )
        self.session.commit()
        return deleted


def seed_sample_data(database, today):
    """Create sample users, one campaign and yesterday's responses if the store is empty."""
    if User.query.first() is not None:
        logger.info("Sample data skipped: users already exist")
        return False

    users = [
        User(phone_number='+1234567890', name='John Doe', timezone='America/New_York'),
        User(phone_number='+1234567891', name='Jane Smith', timezone='America/New_York'),
        User(phone_number='+1234567892', name='Bob Johnson', timezone='America/Los_Angeles'),
        User(phone_number='+1234567893', name='Alice Brown', timezone='America/Chicago'),
        User(phone_number='+1234567894', name='Charlie Wilson', timezone='America/New_York'),
    ]
    database.session.add_all(users)

    campaign = Campaign(
        name='Life Matrix Pilot',
        start_date=today,
        end_date=today + timedelta(days=7),
        is_active=True
    )
    database.session.add(campaign)
    database.session.flush()

    yesterday = today - timedelta(days=1)
    samples = [
        (users[0], 8, 7, 9, 'Had a great day with family'),
        (users[1], 6, 8, 7, 'Completed important project'),
        (users[2], 7, 6, 8, 'Helped a friend in need'),
    ]
    for user, joy, achievement, meaningfulness, free_text in samples:
        database.session.add(SurveyResponse(
            user_id=user.id,
            campaign_id=campaign.id,
            response_date=yesterday,
            joy_score=joy,
            achievement_score=achievement,
            meaningfulness_score=meaningfulness,
            free_text=free_text
        ))

    database.commit()
    logger.info("Sample data created successfully")
    return True

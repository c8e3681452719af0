"""Database models for users, campaigns, survey responses and SMS logs."""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# MODELS

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    phone_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)
    timezone = db.Column(db.String(64), nullable=False, default='America/New_York')
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    responses = db.relationship('SurveyResponse', backref='user', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'phone_number': self.phone_number,
            'name': self.name,
            'timezone': self.timezone,
            'is_active': self.is_active,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


class Campaign(db.Model):
    __tablename__ = 'campaigns'
    __table_args__ = (
        db.CheckConstraint('end_date > start_date', name='ck_campaign_window'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    responses = db.relationship('SurveyResponse', backref='campaign', lazy=True)

    def is_running(self, today):
        return bool(self.is_active) and self.start_date <= today <= self.end_date

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'is_active': self.is_active,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


class SurveyResponse(db.Model):
    __tablename__ = 'survey_responses'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'campaign_id', 'response_date', name='uq_response_per_day'),
        db.CheckConstraint('joy_score BETWEEN 1 AND 10', name='ck_joy_score'),
        db.CheckConstraint('achievement_score BETWEEN 1 AND 10', name='ck_achievement_score'),
        db.CheckConstraint('meaningfulness_score BETWEEN 1 AND 10', name='ck_meaningfulness_score'),
        db.Index('idx_responses_user_date', 'user_id', 'response_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=False, index=True)
    response_date = db.Column(db.Date, nullable=False)

    # Survey scores
    joy_score = db.Column(db.Integer, nullable=False)
    achievement_score = db.Column(db.Integer, nullable=False)
    meaningfulness_score = db.Column(db.Integer, nullable=False)
    free_text = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'campaign_id': self.campaign_id,
            'response_date': self.response_date.isoformat(),
            'joy_score': self.joy_score,
            'achievement_score': self.achievement_score,
            'meaningfulness_score': self.meaningfulness_score,
            'free_text': self.free_text,
            'submitted_at': _isoformat(self.submitted_at),
            'user_name': self.user.name if self.user else None,
            'phone_number': self.user.phone_number if self.user else None,
            'campaign_name': self.campaign.name if self.campaign else None,
        }


class MessageLog(db.Model):
    """Append-only audit row for every outbound or inbound SMS."""

    __tablename__ = 'sms_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id', ondelete='SET NULL'), nullable=True)
    phone_number = db.Column(db.String(20), nullable=True)
    message_type = db.Column(db.String(20), nullable=False)  # survey | feedback | reply
    message_content = db.Column(db.Text, nullable=False)
    twilio_sid = db.Column(db.String(100), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'campaign_id': self.campaign_id,
            'phone_number': self.phone_number,
            'message_type': self.message_type,
            'message_content': self.message_content,
            'twilio_sid': self.twilio_sid,
            'status': self.status,
            'sent_at': _isoformat(self.sent_at),
            'delivered_at': _isoformat(self.delivered_at),
            'error_message': self.error_message,
            'created_at': _isoformat(self.created_at),
        }


def _isoformat(value):
    return value.isoformat() if value else None

"""Survey lifecycle: daily dispatch, reply parsing, scoring and feedback."""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import ConflictError, DeliveryError, NotFoundError
from models import User, Campaign, SurveyResponse, MessageLog

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10
ROLLING_WINDOW_DAYS = 7

SCORE_PATTERN = re.compile(r'[+-]?[0-9]+')

SURVEY_TEMPLATE = """🌟 Daily Life Check-in 🌟

How was your day yesterday? Please rate each area (1-10):

1️⃣ Joy: How much joy did you get?
2️⃣ Achievement: How much achievement did you get?
3️⃣ Meaningfulness: How much meaningfulness did you get?
4️⃣ What influenced your ratings most? (free text)

Reply with your scores like: "8,7,9,Spent time with family"

Or visit: {base_url}/survey

Thank you for participating! 🙏"""

INVALID_FORMAT_MESSAGE = (
    '❌ Invalid format. Please reply with: "joy,achievement,meaningfulness,free_text" '
    '(e.g., "8,7,9,Great day!")'
)
ALREADY_RESPONDED_MESSAGE = "✅ You've already responded today! Thank you for participating."

ENTHUSIASTIC_MESSAGE = "🎉 Amazing! You're thriving! Keep up the great work!"
ENCOURAGING_MESSAGE = "👍 Good progress! You're on the right track!"
SUPPORTIVE_MESSAGE = "💪 Keep going! Every day is a chance to grow!"
EMPATHETIC_MESSAGE = "🤗 Remember, it's okay to have tough days. Tomorrow is a new opportunity!"

# Twilio callback statuses folded onto the log's status vocabulary
DELIVERY_STATUS_MAP = {
    'accepted': 'sent',
    'queued': 'sent',
    'sending': 'sent',
    'sent': 'sent',
    'delivered': 'delivered',
    'read': 'delivered',
    'undelivered': 'failed',
    'failed': 'failed',
    'canceled': 'failed',
}

# Callbacks can arrive out of order; a status never moves back down this ladder
DELIVERY_STATUS_RANK = {'pending': 0, 'sent': 1, 'delivered': 2, 'failed': 2}


@dataclass
class ParsedReply:
    joy: int
    achievement: int
    meaningfulness: int
    free_text: Optional[str] = None

    @property
    def mean(self):
        return round((self.joy + self.achievement + self.meaningfulness) / 3, 1)


@dataclass
class WeeklyTotals:
    joy: int = 0
    achievement: int = 0
    meaningfulness: int = 0
    total_days: int = 0

    def to_dict(self):
        return {
            'joy': self.joy,
            'achievement': self.achievement,
            'meaningfulness': self.meaningfulness,
            'total_days': self.total_days,
        }


@dataclass
class SendResult:
    success: bool
    message_sid: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self):
        return {'sent': self.sent, 'failed': self.failed, 'skipped': self.skipped}


@dataclass
class Submission:
    response: SurveyResponse
    weekly_totals: WeeklyTotals
    feedback: str
    feedback_sent: bool = False


@dataclass
class ReplyOutcome:
    success: bool
    message: str
    type: str

    def to_dict(self):
        return {'success': self.success, 'message': self.message, 'type': self.type}


def parse_score(value):
    """Return value as an int in [1, 10], or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        score = value
    elif isinstance(value, str):
        value = value.strip()
        if not SCORE_PATTERN.fullmatch(value):
            return None
        score = int(value)
    else:
        return None
    if MIN_SCORE <= score <= MAX_SCORE:
        return score
    return None


def parse_reply(text):
    """
    Parse "<joy>,<achievement>,<meaningfulness>[,<free_text>]".

    Anything after the third comma is free text, commas included.
    Returns None when the reply is not in that shape.
    """
    if not text:
        return None

    parts = text.split(',')
    if len(parts) < 3:
        return None

    scores = [parse_score(part) for part in parts[:3]]
    if any(score is None for score in scores):
        return None

    free_text = ','.join(parts[3:]).strip() or None
    return ParsedReply(scores[0], scores[1], scores[2], free_text)


def motivational_message(mean):
    if mean >= 8:
        return ENTHUSIASTIC_MESSAGE
    if mean >= 6:
        return ENCOURAGING_MESSAGE
    if mean >= 4:
        return SUPPORTIVE_MESSAGE
    return EMPATHETIC_MESSAGE


def compose_feedback(reply, totals):
    mean = reply.mean
    return f"""📊 Your Scores:
Joy: {reply.joy}/10
Achievement: {reply.achievement}/10
Meaningfulness: {reply.meaningfulness}/10
Average: {mean:.1f}/10

📈 Weekly Totals:
Joy: {totals.joy}
Achievement: {totals.achievement}
Meaningfulness: {totals.meaningfulness}

{motivational_message(mean)}"""


def survey_message(base_url):
    return SURVEY_TEMPLATE.format(base_url=base_url.rstrip('/'))


class SurveyEngine:
    """
    Composes the daily send decision, reply handling and feedback.

    Needs an active Flask app context: it reads and writes through the
    Flask-SQLAlchemy session held by ``database``.
    """

    def __init__(self, database, sms_service, timezone_name='America/New_York',
                 base_url='http://localhost:5001', send_delay=0.1, sleep=time.sleep, clock=None):
        self.database = database
        self.sms_service = sms_service
        self.timezone = ZoneInfo(timezone_name)
        self.base_url = base_url
        self.send_delay = send_delay
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(self.timezone))

    def now(self):
        return self.clock()

    def today(self):
        return self.now().date()

    def utcnow(self):
        """Naive UTC instant on the engine clock, the way log timestamps are stored."""
        return self.now().astimezone(timezone.utc).replace(tzinfo=None)

    def _utc_midnight(self, day):
        local = datetime.combine(day, dt_time.min, tzinfo=self.timezone)
        return local.astimezone(timezone.utc).replace(tzinfo=None)

    # Queries

    def running_campaigns(self, today=None):
        today = today or self.today()
        return Campaign.query.filter(
            Campaign.is_active.is_(True),
            Campaign.start_date <= today,
            Campaign.end_date >= today
        ).order_by(Campaign.id).all()

    def current_campaign(self, today=None):
        """The running campaign that started most recently."""
        today = today or self.today()
        return Campaign.query.filter(
            Campaign.is_active.is_(True),
            Campaign.start_date <= today,
            Campaign.end_date >= today
        ).order_by(Campaign.start_date.desc(), Campaign.id.desc()).first()

    def active_users(self):
        return User.query.filter_by(is_active=True).order_by(User.id).all()

    def find_response(self, user_id, campaign_id, day):
        return SurveyResponse.query.filter_by(
            user_id=user_id,
            campaign_id=campaign_id,
            response_date=day
        ).first()

    def is_eligible(self, user, campaign, today=None):
        return self.find_response(user.id, campaign.id, today or self.today()) is None

    def already_prompted(self, user, campaign, today=None):
        """True when a survey prompt for this pair went out today and did not fail."""
        today = today or self.today()
        start, end = self._utc_midnight(today), self._utc_midnight(today + timedelta(days=1))
        return MessageLog.query.filter(
            MessageLog.user_id == user.id,
            MessageLog.campaign_id == campaign.id,
            MessageLog.message_type == 'survey',
            MessageLog.status != 'failed',
            MessageLog.created_at >= start,
            MessageLog.created_at < end
        ).first() is not None

    def weekly_totals(self, user_id, campaign_id, today=None):
        today = today or self.today()
        window_start = today - timedelta(days=ROLLING_WINDOW_DAYS - 1)
        row = self.database.session.query(
            func.coalesce(func.sum(SurveyResponse.joy_score), 0),
            func.coalesce(func.sum(SurveyResponse.achievement_score), 0),
            func.coalesce(func.sum(SurveyResponse.meaningfulness_score), 0),
            func.count(SurveyResponse.id)
        ).filter(
            SurveyResponse.user_id == user_id,
            SurveyResponse.campaign_id == campaign_id,
            SurveyResponse.response_date >= window_start,
            SurveyResponse.response_date <= today
        ).one()
        return WeeklyTotals(int(row[0]), int(row[1]), int(row[2]), int(row[3]))

    # Outbound

    def _deliver(self, phone_number, body, message_type, user_id=None, campaign_id=None):
        log = MessageLog(
            user_id=user_id,
            campaign_id=campaign_id,
            phone_number=phone_number,
            message_type=message_type,
            message_content=body,
            status='pending',
            created_at=self.utcnow()
        )
        self.database.add(log)

        try:
            message_sid = self.sms_service.send(phone_number, body)
        except DeliveryError as e:
            log.status = 'failed'
            log.error_message = e.reason
            self.database.commit()
            logger.error(f"Failed to send {message_type} SMS to {phone_number}: {e.reason}")
            return SendResult(success=False, error=e.reason)

        log.twilio_sid = message_sid
        log.status = 'sent'
        log.sent_at = self.utcnow()
        self.database.commit()
        return SendResult(success=True, message_sid=message_sid)

    def send_survey(self, user, campaign):
        return self._deliver(
            user.phone_number,
            survey_message(self.base_url),
            'survey',
            user_id=user.id,
            campaign_id=campaign.id
        )

    def send_feedback(self, user, campaign, body):
        return self._deliver(
            user.phone_number,
            body,
            'feedback',
            user_id=user.id,
            campaign_id=campaign.id if campaign else None
        )

    def send_daily_surveys(self):
        """
        Send today's prompt to every (running campaign, active user) pair.

        A pair is skipped when it already has a response today or a survey
        prompt that went out today without failing, so repeat passes are safe.
        """
        today = self.today()
        result = DispatchResult()
        logger.info(f"Starting daily survey distribution for {today.isoformat()}")

        campaigns = self.running_campaigns(today)
        if not campaigns:
            logger.info("No active campaigns found for today")
            return result

        users = self.active_users()
        if not users:
            logger.info("No active users found")
            return result

        for campaign in campaigns:
            for user in users:
                try:
                    if not self.is_eligible(user, campaign, today):
                        result.skipped += 1
                        logger.info(f"Skipping {user.phone_number} - already responded today")
                        continue
                    if self.already_prompted(user, campaign, today):
                        result.skipped += 1
                        logger.info(f"Skipping {user.phone_number} - survey already sent today")
                        continue

                    send_result = self.send_survey(user, campaign)
                except SQLAlchemyError as e:
                    self.database.rollback()
                    result.failed += 1
                    logger.error(f"Error processing user {user.phone_number}: {e}")
                    continue

                if send_result.success:
                    result.sent += 1
                    logger.info(f"Survey sent to {user.phone_number} for campaign \"{campaign.name}\"")
                else:
                    result.failed += 1

                if self.send_delay:
                    self.sleep(self.send_delay)

        logger.info(
            f"Daily survey distribution complete: {result.sent} sent, "
            f"{result.failed} errors, {result.skipped} skipped"
        )
        return result

    def send_test_survey(self, user_id, campaign_id):
        """Send the prompt to one user right away, ignoring eligibility."""
        user = self.database.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        campaign = self.database.session.get(Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign with ID {campaign_id} not found")

        logger.info(f"Sending test survey to user {user_id} for campaign {campaign_id}")
        return self.send_survey(user, campaign)

    # Inbound

    def _log_inbound(self, body, status, phone_number, message_sid=None,
                     user_id=None, campaign_id=None, error_message=None):
        self.database.add(MessageLog(
            user_id=user_id,
            campaign_id=campaign_id,
            phone_number=phone_number,
            message_type='reply',
            message_content=body or '',
            twilio_sid=message_sid,
            status=status,
            error_message=error_message,
            created_at=self.utcnow()
        ))

    def submit_response(self, user, campaign, reply):
        """
        Store today's response and build the feedback text.

        Raises ConflictError when the user already answered this campaign today.
        """
        today = self.today()
        if self.find_response(user.id, campaign.id, today) is not None:
            raise ConflictError("User has already responded today for this campaign")

        response = SurveyResponse(
            user_id=user.id,
            campaign_id=campaign.id,
            response_date=today,
            joy_score=reply.joy,
            achievement_score=reply.achievement,
            meaningfulness_score=reply.meaningfulness,
            free_text=reply.free_text
        )
        try:
            self.database.add(response)
        except IntegrityError as e:
            self.database.rollback()
            if self.find_response(user.id, campaign.id, today) is not None:
                raise ConflictError("User has already responded today for this campaign") from e
            raise

        totals = self.weekly_totals(user.id, campaign.id, today)
        return Submission(response, totals, compose_feedback(reply, totals))

    def handle_web_response(self, user_id, campaign_id, reply):
        user = self.database.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        campaign = self.database.session.get(Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign not found")

        submission = self.submit_response(user, campaign, reply)
        submission.feedback_sent = self.send_feedback(user, campaign, submission.feedback).success
        return submission

    def handle_sms_reply(self, from_number, body, message_sid=None):
        body = (body or '').strip()

        user = User.query.filter_by(phone_number=from_number).first()
        if user is None:
            logger.warning(f"SMS reply from unknown number: {from_number}")
            self._log_inbound(body, 'invalid', from_number, message_sid, error_message='Unknown sender')
            return ReplyOutcome(True, 'User not found', 'unknown_user')

        campaign = self.current_campaign()
        if campaign is None:
            logger.info(f"No active campaign for user: {from_number}")
            self._log_inbound(body, 'invalid', from_number, message_sid, user_id=user.id,
                              error_message='No active campaign')
            return ReplyOutcome(True, 'No active campaign', 'no_active_campaign')

        reply = parse_reply(body)
        if reply is None:
            self._log_inbound(body, 'invalid', from_number, message_sid, user.id, campaign.id)
            self.send_feedback(user, campaign, INVALID_FORMAT_MESSAGE)
            return ReplyOutcome(True, INVALID_FORMAT_MESSAGE, 'invalid_format')

        self._log_inbound(body, 'processed', from_number, message_sid, user.id, campaign.id)
        try:
            submission = self.submit_response(user, campaign, reply)
        except ConflictError:
            self.send_feedback(user, campaign, ALREADY_RESPONDED_MESSAGE)
            return ReplyOutcome(True, ALREADY_RESPONDED_MESSAGE, 'already_responded')

        self.send_feedback(user, campaign, submission.feedback)
        return ReplyOutcome(True, submission.feedback, 'success')

    def apply_delivery_status(self, message_sid, status):
        """
        Reconcile a provider delivery receipt with its log row.

        Returns False without raising when no row carries the sid, the
        status is not one we track, or it would move the row backwards.
        """
        normalized = DELIVERY_STATUS_MAP.get((status or '').lower())
        if normalized is None:
            logger.warning(f"Ignoring unrecognised SMS status {status!r} for {message_sid}")
            return False

        log = MessageLog.query.filter_by(twilio_sid=message_sid).order_by(MessageLog.id.desc()).first()
        if log is None:
            logger.warning(f"No SMS log matches {message_sid}")
            return False

        if DELIVERY_STATUS_RANK[normalized] < DELIVERY_STATUS_RANK.get(log.status, 0):
            logger.info(f"Ignoring stale SMS status {normalized!r} for {message_sid} (already {log.status!r})")
            return False

        log.status = normalized
        if normalized == 'delivered':
            log.delivered_at = self.utcnow()
        self.database.commit()
        logger.info(f"SMS status updated: {message_sid} -> {normalized}")
        return True

    def cleanup_old_logs(self, retention_days):
        cutoff = self.utcnow() - timedelta(days=retention_days)
        deleted = self.database.purge_message_logs(cutoff)
        logger.info(f"Cleaned up {deleted} old SMS log rows")
        return deleted

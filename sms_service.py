"""Outbound SMS gateway backed by Twilio, with an in-memory mock for development."""

import logging
from datetime import datetime

from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from errors import DeliveryError

logger = logging.getLogger(__name__)


class MockSMSService:
    """Mock SMS service for testing without actual SMS delivery"""

    def __init__(self, from_number=None):
        self.from_number = from_number or '+1234567890'
        self.sent_messages = []

    def send_sms(self, to, body):
        message_id = f"mock_{len(self.sent_messages) + 1}_{int(datetime.now().timestamp())}"

        message = {
            'sid': message_id,
            'to': to,
            'from': self.from_number,
            'body': body,
            'status': 'queued',
            'date_created': datetime.now().isoformat(),
            'direction': 'outbound-api'
        }
        self.sent_messages.append(message)

        logger.info(f"Mock SMS sent to {to}: {body[:50]}...")
        return message_id


class SMSService:
    """
    Send text messages through Twilio or the mock.

    send() returns the provider message id, or raises DeliveryError with the
    provider's reason. Delivery receipts arrive later through the status
    webhook and are reconciled by the survey engine.
    """

    def __init__(self, config):
        self.use_mock = config['USE_MOCK_SMS']

        self.account_sid = config.get('TWILIO_ACCOUNT_SID')
        self.auth_token = config.get('TWILIO_AUTH_TOKEN')
        self.phone_number = config.get('TWILIO_PHONE_NUMBER')

        if self.use_mock:
            self.mock_service = MockSMSService(self.phone_number)
            self.client = None
            logger.info("Using Mock SMS Service for testing")
        else:
            if not self.is_configured:
                raise ValueError("Twilio credentials not properly configured")

            self.client = Client(self.account_sid, self.auth_token)
            logger.info("Using Real Twilio SMS Service")

    @property
    def is_configured(self):
        return all([self.account_sid, self.auth_token, self.phone_number])

    def send(self, to, body):
        if not to:
            raise DeliveryError("Destination phone number is required")

        try:
            if self.use_mock:
                message_sid = self.mock_service.send_sms(to=to, body=body)
            else:
                message = self.client.messages.create(
                    body=body,
                    from_=self.phone_number,
                    to=to
                )
                message_sid = message.sid
        except (TwilioException, OSError) as e:
            # requests' connection errors subclass OSError
            logger.error(f"Failed to send SMS to {to}: {e}")
            raise DeliveryError(str(e)) from e

        logger.info(f"SMS sent to {to}: {message_sid}")
        return message_sid

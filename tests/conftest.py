"""Shared fixtures: an in-memory app with a fake SMS gateway and a frozen clock."""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from config import TestingConfig
from errors import DeliveryError
from models import db, User, Campaign
from sms_survey import create_app

TZ = ZoneInfo('America/New_York')
FIXED_NOW = datetime(2024, 1, 5, 9, 30, tzinfo=TZ)
TODAY = FIXED_NOW.date()


class FakeSMSService:
    """Records sends; numbers in fail_numbers raise DeliveryError."""

    use_mock = True
    is_configured = False

    def __init__(self):
        self.sent = []
        self.fail_numbers = set()

    def send(self, to, body):
        if to in self.fail_numbers:
            raise DeliveryError(f"Unreachable number {to}")
        sid = f"SM{len(self.sent) + 1:04d}"
        self.sent.append({'to': to, 'body': body, 'sid': sid})
        return sid


class FrozenClock:
    def __init__(self, now):
        self.current = now

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def sms():
    return FakeSMSService()


@pytest.fixture
def app(sms, clock):
    app = create_app(TestingConfig, sms_service=sms, clock=clock)
    with app.app_context():
        app.extensions['survey_database'].init_schema()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions['survey_engine']


@pytest.fixture
def database(app):
    return app.extensions['survey_database']


@pytest.fixture
def admin_headers():
    return {'Authorization': 'Bearer test-admin'}


def make_user(phone_number='+15551230001', name='Ada', is_active=True):
    user = User(phone_number=phone_number, name=name, is_active=is_active)
    db.session.add(user)
    db.session.commit()
    return user


def make_campaign(name='Pilot', start_date=date(2024, 1, 1), end_date=date(2024, 1, 8), is_active=True):
    campaign = Campaign(name=name, start_date=start_date, end_date=end_date, is_active=is_active)
    db.session.add(campaign)
    db.session.commit()
    return campaign


@pytest.fixture
def user_factory(app):
    return make_user


@pytest.fixture
def campaign_factory(app):
    return make_campaign


@pytest.fixture
def user(app):
    return make_user()


@pytest.fixture
def campaign(app):
    return make_campaign()

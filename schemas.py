"""Request schemas for the JSON API and the Twilio webhooks."""

import re
from datetime import date
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{1,14}$')

Score = Annotated[int, Field(strict=True, ge=1, le=10)]


class ResponseSubmission(BaseModel):
    user_id: int
    campaign_id: int
    joy_score: Score
    achievement_score: Score
    meaningfulness_score: Score
    free_text: Optional[str] = None

    @field_validator('free_text')
    @classmethod
    def strip_free_text(cls, value):
        if value is None:
            return None
        return value.strip() or None


class UserCreate(BaseModel):
    phone_number: str
    name: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator('phone_number')
    @classmethod
    def check_phone(cls, value):
        value = value.strip()
        if not PHONE_PATTERN.match(value):
            raise ValueError('Invalid phone number format')
        return value


class UserUpdate(BaseModel):
    name: Optional[str] = None
    timezone: Optional[str] = None
    is_active: Optional[bool] = None


class UserImport(BaseModel):
    users: List[dict] = Field(min_length=1)


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1)
    start_date: date
    end_date: date

    @model_validator(mode='after')
    def check_window(self):
        if self.start_date >= self.end_date:
            raise ValueError('End date must be after start date')
        return self


class CampaignUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class TestSendRequest(BaseModel):
    user_id: int
    campaign_id: int


class SmsReplyPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    From: str = Field(min_length=1)
    Body: str = ''
    MessageSid: Optional[str] = None


class SmsStatusPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    MessageSid: str = Field(min_length=1)
    MessageStatus: str = ''

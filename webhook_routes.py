"""Twilio webhooks: inbound replies and delivery-status callbacks."""

import logging

from flask import Blueprint, jsonify, request

from routes import get_engine
from schemas import SmsReplyPayload, SmsStatusPayload

logger = logging.getLogger(__name__)

webhooks = Blueprint('webhooks', __name__)


def _webhook_payload():
    # Twilio posts form-encoded bodies; the dashboard and tests may send JSON
    if request.form:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


@webhooks.route('/twilio/sms-reply', methods=['POST'])
def sms_reply():
    payload = SmsReplyPayload.model_validate(_webhook_payload())
    outcome = get_engine().handle_sms_reply(payload.From, payload.Body, payload.MessageSid)
    logger.info(f"SMS reply from {payload.From}: {outcome.type}")
    return jsonify(outcome.to_dict())


@webhooks.route('/twilio/sms-status', methods=['POST'])
def sms_status():
    payload = SmsStatusPayload.model_validate(_webhook_payload())
    updated = get_engine().apply_delivery_status(payload.MessageSid, payload.MessageStatus)
    return jsonify({'success': True, 'updated': updated})

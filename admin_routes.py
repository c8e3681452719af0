"""Admin endpoints behind a bearer-token password gate."""

import csv
import hmac
import io
import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, Response, current_app, jsonify, request
from pydantic import ValidationError as SchemaError

from errors import AuthError, ValidationError
from models import User, Campaign, SurveyResponse, MessageLog
from routes import get_database, get_engine, get_scheduler, json_payload
from schemas import TestSendRequest, UserCreate, UserImport

logger = logging.getLogger(__name__)

admin = Blueprint('admin', __name__)

CSV_HEADERS = [
    'ID', 'User Name', 'Phone Number', 'Campaign', 'Response Date', 'Joy Score',
    'Achievement Score', 'Meaningfulness Score', 'Free Text', 'Submitted At'
]


@admin.before_request
def require_admin_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        raise AuthError('Authorization header required')

    token = auth_header[len('Bearer '):]
    if not hmac.compare_digest(token.encode(), current_app.config['ADMIN_PASSWORD'].encode()):
        raise AuthError('Invalid admin password')


def sms_stats(database, since):
    return database.fetch_many("""
        SELECT
            status,
            COUNT(*) AS count,
            DATE(created_at) AS date
        FROM sms_logs
        WHERE created_at >= :since
        GROUP BY status, DATE(created_at)
        ORDER BY date DESC
    """, {'since': since.strftime('%Y-%m-%d %H:%M:%S')})


def _seven_days_ago():
    return datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=7)


@admin.route('/dashboard', methods=['GET'])
def dashboard():
    database = get_database()
    today = get_engine().today()

    recent_responses = SurveyResponse.query.order_by(
        SurveyResponse.submitted_at.desc(), SurveyResponse.id.desc()
    ).limit(10).all()

    return jsonify({
        'success': True,
        'dashboard': {
            'stats': {
                'totalUsers': User.query.filter_by(is_active=True).count(),
                'totalCampaigns': Campaign.query.filter_by(is_active=True).count(),
                'totalResponses': SurveyResponse.query.count(),
                'todayResponses': SurveyResponse.query.filter_by(response_date=today).count()
            },
            'smsStats': sms_stats(database, _seven_days_ago()),
            'recentResponses': [response.to_dict() for response in recent_responses],
            'nextScheduled': get_scheduler().next_scheduled_time()
        }
    })


@admin.route('/test-sms', methods=['POST'])
def test_sms():
    payload = TestSendRequest.model_validate(json_payload())
    result = get_scheduler().send_test_survey(payload.user_id, payload.campaign_id)

    if result.success:
        logger.info("Test survey sent successfully")
        return jsonify({
            'success': True,
            'message': 'Test survey sent successfully',
            'messageSid': result.message_sid
        })

    logger.error(f"Test survey failed: {result.error}")
    return jsonify({'success': False, 'error': result.error})


@admin.route('/send-surveys', methods=['POST'])
def send_surveys():
    result = get_engine().send_daily_surveys()
    return jsonify({'success': True, 'result': result.to_dict()})


@admin.route('/status', methods=['GET'])
def status():
    database = get_database()
    scheduler = get_scheduler()

    db_test = database.fetch_one('SELECT 1 AS test')
    sms_service = get_engine().sms_service

    return jsonify({
        'success': True,
        'status': {
            'database': 'connected' if db_test else 'disconnected',
            'twilio': 'configured' if sms_service.is_configured else 'not_configured',
            'smsMode': 'mock' if sms_service.use_mock else 'twilio',
            'scheduler': 'running' if scheduler.is_armed else 'stopped',
            'nextScheduled': scheduler.next_scheduled_time(),
            'smsStats': sms_stats(database, _seven_days_ago())[:5]
        }
    })


@admin.route('/sms-logs', methods=['GET'])
def sms_logs():
    limit = request.args.get('limit', 50, type=int)
    status_filter = request.args.get('status')
    message_type = request.args.get('message_type')

    query = MessageLog.query
    if status_filter:
        query = query.filter_by(status=status_filter)
    if message_type:
        query = query.filter_by(message_type=message_type)

    logs = query.order_by(MessageLog.id.desc()).limit(limit).all()
    return jsonify({'success': True, 'logs': [log.to_dict() for log in logs]})


@admin.route('/users/import', methods=['POST'])
def import_users():
    payload = UserImport.model_validate(json_payload())
    database = get_database()
    default_timezone = current_app.config['DEFAULT_USER_TIMEZONE']

    results = {'success': 0, 'skipped': 0, 'failed': 0, 'errors': []}

    for entry in payload.users:
        try:
            user = UserCreate.model_validate(entry)
        except SchemaError:
            results['failed'] += 1
            results['errors'].append(f"Invalid or missing phone number for user: {entry}")
            continue

        if User.query.filter_by(phone_number=user.phone_number).first():
            results['skipped'] += 1
            continue

        database.session.add(User(
            phone_number=user.phone_number,
            name=user.name,
            timezone=user.timezone or default_timezone
        ))
        database.session.flush()
        results['success'] += 1

    database.commit()
    logger.info(
        f"Imported users: {results['success']} added, "
        f"{results['skipped']} skipped, {results['failed']} failed"
    )
    return jsonify({'success': True, 'importResults': results})


@admin.route('/export/responses', methods=['GET'])
def export_responses():
    campaign_id = request.args.get('campaign_id', type=int)
    export_format = request.args.get('format', 'json')
    if export_format not in ('json', 'csv'):
        raise ValidationError('format must be json or csv')

    query = SurveyResponse.query
    if campaign_id is not None:
        query = query.filter_by(campaign_id=campaign_id)
    responses = [
        response.to_dict()
        for response in query.order_by(SurveyResponse.submitted_at.desc(), SurveyResponse.id.desc()).all()
    ]

    if export_format == 'csv':
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_HEADERS)
        for r in responses:
            writer.writerow([
                r['id'], r['user_name'] or '', r['phone_number'], r['campaign_name'],
                r['response_date'], r['joy_score'], r['achievement_score'],
                r['meaningfulness_score'], r['free_text'] or '', r['submitted_at']
            ])
        return Response(
            buffer.getvalue(),
            mimetype='text/csv',
            headers={'Content-Disposition': 'attachment; filename=survey_responses.csv'}
        )

    return jsonify({
        'success': True,
        'data': responses,
        'count': len(responses),
        'exported_at': datetime.now(timezone.utc).isoformat()
    })

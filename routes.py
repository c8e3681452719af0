"""JSON API for users, campaigns and survey responses."""

import logging
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError, ValidationError
from models import User, Campaign, SurveyResponse
from schemas import CampaignCreate, CampaignUpdate, ResponseSubmission, UserCreate, UserUpdate
from survey_engine import ParsedReply

logger = logging.getLogger(__name__)

MAX_SUMMARY_DAYS = 3650

api = Blueprint('api', __name__)


def get_engine():
    return current_app.extensions['survey_engine']


def get_database():
    return current_app.extensions['survey_database']


def get_scheduler():
    return current_app.extensions['survey_scheduler']


def json_payload():
    return request.get_json(silent=True) or {}


def _get_or_404(model, object_id, label):
    instance = get_database().session.get(model, object_id)
    if instance is None:
        raise NotFoundError(f"{label} not found")
    return instance


@api.route('/health')
def health():
    return jsonify({
        'status': 'healthy',
        'timestamp': get_engine().now().isoformat(),
        'service': 'Daily SMS Survey System'
    })


# Users

@api.route('/users', methods=['GET'])
def list_users():
    rows = get_database().session.query(
        User,
        func.count(SurveyResponse.id),
        func.max(SurveyResponse.submitted_at)
    ).outerjoin(SurveyResponse, SurveyResponse.user_id == User.id).group_by(User.id).order_by(
        User.created_at.desc(), User.id.desc()
    ).all()

    users = []
    for user, total_responses, last_response in rows:
        data = user.to_dict()
        data['total_responses'] = total_responses
        data['last_response'] = last_response.isoformat() if last_response else None
        users.append(data)
    return jsonify({'success': True, 'users': users})


@api.route('/users/<int:user_id>', methods=['GET'])
def get_user(user_id):
    database = get_database()
    user = _get_or_404(User, user_id, 'User')
    since = get_engine().today() - timedelta(days=6)

    responses = SurveyResponse.query.filter_by(user_id=user_id).order_by(
        SurveyResponse.response_date.desc()
    ).all()

    weekly_totals = database.fetch_one("""
        SELECT
            COALESCE(SUM(joy_score), 0) AS joy,
            COALESCE(SUM(achievement_score), 0) AS achievement,
            COALESCE(SUM(meaningfulness_score), 0) AS meaningfulness,
            COUNT(*) AS total_days
        FROM survey_responses
        WHERE user_id = :user_id AND response_date >= :since
    """, {'user_id': user_id, 'since': since.isoformat()})

    data = user.to_dict()
    data['responses'] = [response.to_dict() for response in responses]
    data['weeklyTotals'] = weekly_totals
    return jsonify({'success': True, 'user': data})


@api.route('/users', methods=['POST'])
def create_user():
    payload = UserCreate.model_validate(json_payload())
    database = get_database()

    if User.query.filter_by(phone_number=payload.phone_number).first():
        raise ConflictError('Phone number already exists')

    user = User(
        phone_number=payload.phone_number,
        name=payload.name,
        timezone=payload.timezone or current_app.config['DEFAULT_USER_TIMEZONE']
    )
    try:
        database.add(user)
    except IntegrityError as e:
        database.rollback()
        raise ConflictError('Phone number already exists') from e

    logger.info(f"User created: {user.phone_number}")
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@api.route('/users/<int:user_id>', methods=['PUT'])
def update_user(user_id):
    payload = UserUpdate.model_validate(json_payload())
    user = _get_or_404(User, user_id, 'User')

    for key, value in payload.model_dump(exclude_unset=True).items():
        if key in ('timezone', 'is_active') and value is None:
            continue
        setattr(user, key, value)
    get_database().commit()

    return jsonify({'success': True, 'user': user.to_dict()})


@api.route('/users/<int:user_id>', methods=['DELETE'])
def delete_user(user_id):
    database = get_database()
    user = _get_or_404(User, user_id, 'User')

    if database.count_responses(user_id=user_id) > 0:
        raise ConflictError('Cannot delete user with existing responses. Deactivate instead.')

    database.delete(user)
    logger.info(f"User deleted: {user_id}")
    return jsonify({'success': True, 'message': 'User deleted successfully'})


@api.route('/users/<int:user_id>/dashboard', methods=['GET'])
def user_dashboard(user_id):
    database = get_database()
    user = _get_or_404(User, user_id, 'User')
    since = get_engine().today() - timedelta(days=6)

    recent_responses = SurveyResponse.query.filter(
        SurveyResponse.user_id == user_id,
        SurveyResponse.response_date >= since
    ).order_by(SurveyResponse.response_date.desc()).all()

    weekly_totals = database.fetch_one("""
        SELECT
            COALESCE(SUM(joy_score), 0) AS joy,
            COALESCE(SUM(achievement_score), 0) AS achievement,
            COALESCE(SUM(meaningfulness_score), 0) AS meaningfulness,
            COUNT(*) AS total_days,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness
        FROM survey_responses
        WHERE user_id = :user_id AND response_date >= :since
    """, {'user_id': user_id, 'since': since.isoformat()})

    all_time_stats = database.fetch_one("""
        SELECT
            COUNT(*) AS total_responses,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness,
            MIN(response_date) AS first_response,
            MAX(response_date) AS last_response
        FROM survey_responses
        WHERE user_id = :user_id
    """, {'user_id': user_id})

    return jsonify({
        'success': True,
        'dashboard': {
            'user': user.to_dict(),
            'recentResponses': [response.to_dict() for response in recent_responses],
            'weeklyTotals': weekly_totals,
            'allTimeStats': all_time_stats
        }
    })


# Campaigns

@api.route('/campaigns', methods=['GET'])
def list_campaigns():
    today = get_engine().today()
    total_users = User.query.filter_by(is_active=True).count()
    rows = get_database().session.query(
        Campaign,
        func.count(SurveyResponse.id),
        func.coalesce(func.sum(case((SurveyResponse.response_date == today, 1), else_=0)), 0)
    ).outerjoin(SurveyResponse, SurveyResponse.campaign_id == Campaign.id).group_by(Campaign.id).order_by(
        Campaign.created_at.desc(), Campaign.id.desc()
    ).all()

    campaigns = []
    for campaign, total_responses, today_responses in rows:
        data = campaign.to_dict()
        data['total_users'] = total_users
        data['total_responses'] = total_responses
        data['today_responses'] = int(today_responses)
        campaigns.append(data)
    return jsonify({'success': True, 'campaigns': campaigns})


@api.route('/campaigns/active/list', methods=['GET'])
def list_active_campaigns():
    campaigns = get_engine().running_campaigns()
    campaigns.sort(key=lambda campaign: campaign.start_date)
    return jsonify({'success': True, 'campaigns': [campaign.to_dict() for campaign in campaigns]})


@api.route('/campaigns/<int:campaign_id>', methods=['GET'])
def get_campaign(campaign_id):
    database = get_database()
    campaign = _get_or_404(Campaign, campaign_id, 'Campaign')

    stats = database.fetch_one("""
        SELECT
            COUNT(DISTINCT user_id) AS unique_respondents,
            COUNT(id) AS total_responses,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness,
            MIN(response_date) AS first_response,
            MAX(response_date) AS last_response
        FROM survey_responses
        WHERE campaign_id = :campaign_id
    """, {'campaign_id': campaign_id})

    daily_stats = database.fetch_many("""
        SELECT
            response_date,
            COUNT(*) AS response_count,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness
        FROM survey_responses
        WHERE campaign_id = :campaign_id
        GROUP BY response_date
        ORDER BY response_date DESC
    """, {'campaign_id': campaign_id})

    data = campaign.to_dict()
    data['is_running'] = campaign.is_running(get_engine().today())
    data['stats'] = stats
    data['dailyStats'] = daily_stats
    return jsonify({'success': True, 'campaign': data})


@api.route('/campaigns', methods=['POST'])
def create_campaign():
    payload = CampaignCreate.model_validate(json_payload())

    campaign = Campaign(
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=True
    )
    get_database().add(campaign)

    logger.info(f"Campaign created: {campaign.name}")
    return jsonify({'success': True, 'campaign': campaign.to_dict()}), 201


@api.route('/campaigns/<int:campaign_id>', methods=['PUT'])
def update_campaign(campaign_id):
    payload = CampaignUpdate.model_validate(json_payload())
    campaign = _get_or_404(Campaign, campaign_id, 'Campaign')

    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items()
               if value is not None}
    start_date = changes.get('start_date', campaign.start_date)
    end_date = changes.get('end_date', campaign.end_date)
    if start_date >= end_date:
        raise ValidationError('End date must be after start date')

    for key, value in changes.items():
        setattr(campaign, key, value)
    get_database().commit()

    return jsonify({'success': True, 'campaign': campaign.to_dict()})


@api.route('/campaigns/<int:campaign_id>', methods=['DELETE'])
def delete_campaign(campaign_id):
    database = get_database()
    campaign = _get_or_404(Campaign, campaign_id, 'Campaign')

    if database.count_responses(campaign_id=campaign_id) > 0:
        raise ConflictError('Cannot delete campaign with existing responses. Deactivate instead.')

    database.delete(campaign)
    logger.info(f"Campaign deleted: {campaign_id}")
    return jsonify({'success': True, 'message': 'Campaign deleted successfully'})


# Responses

@api.route('/responses', methods=['POST'])
def submit_response():
    payload = ResponseSubmission.model_validate(json_payload())
    reply = ParsedReply(
        payload.joy_score,
        payload.achievement_score,
        payload.meaningfulness_score,
        payload.free_text
    )

    submission = get_engine().handle_web_response(payload.user_id, payload.campaign_id, reply)

    return jsonify({
        'success': True,
        'response': submission.response.to_dict(),
        'weeklyTotals': submission.weekly_totals.to_dict(),
        'feedback': submission.feedback,
        'feedbackSent': submission.feedback_sent,
        'message': 'Response submitted successfully and feedback sent!'
        if submission.feedback_sent else 'Response submitted successfully'
    }), 201


@api.route('/responses', methods=['GET'])
def list_responses():
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)
    user_id = request.args.get('user_id', type=int)
    campaign_id = request.args.get('campaign_id', type=int)

    query = SurveyResponse.query
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    if campaign_id is not None:
        query = query.filter_by(campaign_id=campaign_id)

    total = query.count()
    responses = query.order_by(SurveyResponse.submitted_at.desc(), SurveyResponse.id.desc()) \
        .limit(limit).offset(offset).all()

    return jsonify({
        'success': True,
        'responses': [response.to_dict() for response in responses],
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'hasMore': offset + limit < total
        }
    })


@api.route('/responses/<int:response_id>', methods=['GET'])
def get_response(response_id):
    response = _get_or_404(SurveyResponse, response_id, 'Response')
    return jsonify({'success': True, 'response': response.to_dict()})


@api.route('/responses/analytics/summary', methods=['GET'])
def response_summary():
    days = request.args.get('days', 7, type=int)
    campaign_id = request.args.get('campaign_id', type=int)
    if not 1 <= days <= MAX_SUMMARY_DAYS:
        raise ValidationError(f'days must be between 1 and {MAX_SUMMARY_DAYS}')

    since = get_engine().today() - timedelta(days=days - 1)
    params = {'since': since.isoformat()}
    campaign_filter = ''
    if campaign_id is not None:
        campaign_filter = ' AND campaign_id = :campaign_id'
        params['campaign_id'] = campaign_id

    database = get_database()
    summary = database.fetch_one(f"""
        SELECT
            COUNT(*) AS total_responses,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness,
            MIN(response_date) AS first_response,
            MAX(response_date) AS last_response
        FROM survey_responses
        WHERE response_date >= :since{campaign_filter}
    """, params)

    daily_breakdown = database.fetch_many(f"""
        SELECT
            response_date,
            COUNT(*) AS response_count,
            AVG(joy_score) AS avg_joy,
            AVG(achievement_score) AS avg_achievement,
            AVG(meaningfulness_score) AS avg_meaningfulness
        FROM survey_responses
        WHERE response_date >= :since{campaign_filter}
        GROUP BY response_date
        ORDER BY response_date DESC
    """, params)

    return jsonify({
        'success': True,
        'analytics': {
            'summary': summary,
            'dailyBreakdown': daily_breakdown
        }
    })

"""Tests for the users, campaigns and responses endpoints."""

from datetime import date

import pytest

from models import MessageLog, SurveyResponse, User


def submit(client, user, campaign, **overrides):
    payload = {
        'user_id': user.id,
        'campaign_id': campaign.id,
        'joy_score': 8,
        'achievement_score': 7,
        'meaningfulness_score': 9,
        'free_text': 'Great day!'
    }
    payload.update(overrides)
    return client.post('/api/responses', json=payload)


def test_index_and_health(client):
    assert client.get('/').get_json()['status'] == 'running'
    assert client.get('/health').get_json()['status'] == 'healthy'
    assert client.get('/api/health').get_json()['service'] == 'Daily SMS Survey System'


class TestResponses:

    def test_submit_returns_201_with_feedback(self, client, sms, user, campaign):
        response = submit(client, user, campaign)
        data = response.get_json()

        assert response.status_code == 201
        assert data['success'] is True
        assert data['response']['joy_score'] == 8
        assert data['response']['response_date'] == '2024-01-05'
        assert data['response']['campaign_name'] == 'Pilot'
        assert data['weeklyTotals'] == {'joy': 8, 'achievement': 7, 'meaningfulness': 9, 'total_days': 1}
        assert data['feedbackSent'] is True
        assert sms.sent[-1]['to'] == user.phone_number

    def test_duplicate_submission_returns_409(self, client, user, campaign):
        assert submit(client, user, campaign).status_code == 201

        response = submit(client, user, campaign, joy_score=1)

        assert response.status_code == 409
        assert response.get_json()['success'] is False
        assert SurveyResponse.query.count() == 1

    @pytest.mark.parametrize("overrides", [
        {'joy_score': 11},
        {'achievement_score': 0},
        {'meaningfulness_score': '9'},
        {'joy_score': 7.5},
        {'joy_score': True},
        {'joy_score': None},
    ])
    def test_bad_scores_return_400(self, client, user, campaign, overrides):
        response = submit(client, user, campaign, **overrides)

        assert response.status_code == 400
        assert SurveyResponse.query.count() == 0

    def test_missing_fields_return_400(self, client):
        response = client.post('/api/responses', json={'user_id': 1})

        assert response.status_code == 400
        assert 'campaign_id' in response.get_json()['error']

    def test_unknown_user_returns_404(self, client, campaign):
        response = client.post('/api/responses', json={
            'user_id': 42,
            'campaign_id': campaign.id,
            'joy_score': 5,
            'achievement_score': 5,
            'meaningfulness_score': 5
        })

        assert response.status_code == 404

    def test_list_filters_and_paginates(self, client, user_factory, campaign):
        first = user_factory('+15550000001', 'Alice')
        second = user_factory('+15550000002', 'Bob')
        submit(client, first, campaign)
        submit(client, second, campaign)

        data = client.get(f'/api/responses?user_id={first.id}').get_json()
        assert [r['user_id'] for r in data['responses']] == [first.id]
        assert data['pagination']['total'] == 1

        data = client.get('/api/responses?limit=1&offset=0').get_json()
        assert len(data['responses']) == 1
        assert data['pagination']['hasMore'] is True

    def test_get_single_response(self, client, user, campaign):
        response_id = submit(client, user, campaign).get_json()['response']['id']

        assert client.get(f'/api/responses/{response_id}').get_json()['response']['free_text'] == 'Great day!'
        assert client.get('/api/responses/999').status_code == 404

    def test_analytics_summary(self, client, user, campaign):
        submit(client, user, campaign)

        data = client.get(f'/api/responses/analytics/summary?days=7&campaign_id={campaign.id}').get_json()
        summary = data['analytics']['summary']

        assert summary['total_responses'] == 1
        assert summary['avg_joy'] == 8
        assert data['analytics']['dailyBreakdown'][0]['response_count'] == 1

    @pytest.mark.parametrize("days", [0, 1000000])
    def test_analytics_summary_rejects_out_of_range_days(self, client, days):
        response = client.get(f'/api/responses/analytics/summary?days={days}')

        assert response.status_code == 400
        assert response.get_json()['success'] is False


class TestUsers:

    def test_create_user(self, client):
        response = client.post('/api/users', json={'phone_number': '+15551112222', 'name': 'Grace'})
        data = response.get_json()

        assert response.status_code == 201
        assert data['user']['phone_number'] == '+15551112222'
        assert data['user']['timezone'] == 'America/New_York'
        assert data['user']['is_active'] is True

    def test_create_user_rejects_bad_phone(self, client):
        response = client.post('/api/users', json={'phone_number': 'call me maybe'})

        assert response.status_code == 400

    def test_create_user_rejects_duplicate_phone(self, client, user):
        response = client.post('/api/users', json={'phone_number': user.phone_number})

        assert response.status_code == 409

    def test_update_user(self, client, user):
        response = client.put(f'/api/users/{user.id}', json={'is_active': False, 'name': 'Ada L.'})

        assert response.status_code == 200
        assert response.get_json()['user']['is_active'] is False
        assert response.get_json()['user']['name'] == 'Ada L.'

    def test_list_users_counts_responses(self, client, user, campaign):
        submit(client, user, campaign)

        users = client.get('/api/users').get_json()['users']

        assert users[0]['total_responses'] == 1
        assert users[0]['is_active'] is True
        assert users[0]['last_response'].startswith('2')
        assert 'T' in users[0]['created_at']

    def test_user_detail_and_dashboard(self, client, user, campaign):
        submit(client, user, campaign)

        detail = client.get(f'/api/users/{user.id}').get_json()['user']
        assert len(detail['responses']) == 1
        assert detail['weeklyTotals']['joy'] == 8

        dashboard = client.get(f'/api/users/{user.id}/dashboard').get_json()['dashboard']
        assert dashboard['allTimeStats']['total_responses'] == 1
        assert len(dashboard['recentResponses']) == 1

    def test_delete_user_without_responses(self, client, user):
        response = client.delete(f'/api/users/{user.id}')

        assert response.status_code == 200
        assert User.query.count() == 0

    def test_delete_user_keeps_message_log(self, client, engine, user, campaign):
        engine.send_test_survey(user.id, campaign.id)

        assert client.delete(f'/api/users/{user.id}').status_code == 200

        log = MessageLog.query.one()
        assert log.user_id is None
        assert log.phone_number == '+15551230001'

    def test_delete_user_with_responses_is_rejected(self, client, user, campaign):
        submit(client, user, campaign)

        response = client.delete(f'/api/users/{user.id}')

        assert response.status_code == 409
        assert User.query.count() == 1

    def test_missing_user_returns_404(self, client):
        assert client.get('/api/users/999').status_code == 404
        assert client.delete('/api/users/999').status_code == 404


class TestCampaigns:

    def test_create_campaign(self, client):
        response = client.post('/api/campaigns', json={
            'name': 'Spring',
            'start_date': '2024-03-01',
            'end_date': '2024-03-31'
        })

        assert response.status_code == 201
        assert response.get_json()['campaign']['end_date'] == '2024-03-31'

    @pytest.mark.parametrize("payload", [
        {'name': 'Same day', 'start_date': '2024-03-01', 'end_date': '2024-03-01'},
        {'name': 'Backwards', 'start_date': '2024-03-31', 'end_date': '2024-03-01'},
        {'name': 'Bad date', 'start_date': 'soon', 'end_date': '2024-03-01'},
        {'start_date': '2024-03-01', 'end_date': '2024-03-31'},
    ])
    def test_create_campaign_validation(self, client, payload):
        assert client.post('/api/campaigns', json=payload).status_code == 400

    def test_update_rejects_inverted_window(self, client, campaign):
        response = client.put(f'/api/campaigns/{campaign.id}', json={'end_date': '2023-12-01'})

        assert response.status_code == 400

    def test_update_deactivates(self, client, campaign):
        response = client.put(f'/api/campaigns/{campaign.id}', json={'is_active': False})

        assert response.get_json()['campaign']['is_active'] is False

    def test_active_list_uses_window(self, client, campaign_factory):
        running = campaign_factory()
        campaign_factory('Later', start_date=date(2024, 1, 9), end_date=date(2024, 2, 1))

        campaigns = client.get('/api/campaigns/active/list').get_json()['campaigns']

        assert [c['id'] for c in campaigns] == [running.id]

    def test_list_and_detail_stats(self, client, user, campaign):
        submit(client, user, campaign)

        listed = client.get('/api/campaigns').get_json()['campaigns'][0]
        assert listed['total_responses'] == 1
        assert listed['today_responses'] == 1
        assert listed['total_users'] == 1
        assert listed['is_active'] is True
        assert listed['start_date'] == '2024-01-01'

        detail = client.get(f'/api/campaigns/{campaign.id}').get_json()['campaign']
        assert detail['is_running'] is True
        assert detail['stats']['unique_respondents'] == 1
        assert len(detail['dailyStats']) == 1

    def test_delete_campaign_rules(self, client, user, campaign_factory):
        empty = campaign_factory('Empty')
        used = campaign_factory('Used')
        submit(client, user, used)

        assert client.delete(f'/api/campaigns/{empty.id}').status_code == 200
        assert client.delete(f'/api/campaigns/{used.id}').status_code == 409

import json
from types import SimpleNamespace
import pytest
from pywebpush import WebPushException
from config import Config
from sowtracker.models.notification import Notification, NotificationPreferences
from sowtracker.services import push_service

SUBSCRIPTION = {'endpoint': 'https://push.example.com/abc', 'keys': {'p256dh': 'key', 'auth': 'secret'}}


@pytest.fixture
def webpush_calls(monkeypatch):
    calls = []

    def fake_webpush(**kwargs):
        calls.append(kwargs)

    monkeypatch.setattr(push_service, 'webpush', fake_webpush)
    return calls


@pytest.fixture
def notification(owner):
    NotificationPreferences.save_push_subscription(owner['_id'], SUBSCRIPTION)
    return Notification.create_notification(owner['_id'], 'farrowing', 'Farrowing Alert: S-1', 'Due in 3 days')


def test_notification_url_mapping():
    assert push_service.get_notification_url({'type': 'task'}) == 'https://farm.example.com/tasks'
    assert push_service.get_notification_url({'type': 'compliance'}) == 'https://farm.example.com/reports'
    assert push_service.get_notification_url({'type': 'weird'}) == 'https://farm.example.com/'
    assert push_service.get_notification_url({'type': 'task', 'action_url': 'calendar'}) == 'https://farm.example.com/calendar'
    assert push_service.get_notification_url({'action_url': 'https://other.example.com/x'}) == 'https://other.example.com/x'


def test_send_push_delivers_payload(notification, webpush_calls):
    body, status = push_service.send_push(str(notification['_id']))
    assert status == 200
    assert body['success'] is True

    call = webpush_calls[0]
    assert call['subscription_info'] == SUBSCRIPTION
    assert call['vapid_private_key'] == 'test-private-key'
    assert call['vapid_claims'] == {'sub': f'mailto:{Config.VAPID_EMAIL}'}
    payload = json.loads(call['data'])
    assert payload == {
        'title': 'Farrowing Alert: S-1',
        'body': 'Due in 3 days',
        'icon': '/icon-192x192.png',
        'badge': '/icon-96x96.png',
        'tag': 'farrowing',
        'notificationId': str(notification['_id']),
        'type': 'farrowing',
        'url': 'https://farm.example.com/sows',
    }
    assert Notification.find_by_id(notification['_id'])['push_sent_at'] is not None


def test_send_push_requires_id_and_notification(webpush_calls):
    assert push_service.send_push(None)[1] == 400
    assert push_service.send_push('64b000000000000000000000')[1] == 404


def test_send_push_without_subscription(owner, webpush_calls):
    notification = Notification.create_notification(owner['_id'], 'task', 'Task', 'Do it')
    body, status = push_service.send_push(str(notification['_id']))
    assert status == 400
    assert body['message'] == 'No push subscription found for user'

    NotificationPreferences.update_preferences(owner['_id'], {'push_enabled': False})
    assert push_service.send_push(str(notification['_id']))[0]['message'] == 'User has push notifications disabled'
    assert webpush_calls == []


def test_expired_subscription_is_removed(notification, monkeypatch):
    def gone(**kwargs):
        raise WebPushException('Push failed: 410 Gone', response=SimpleNamespace(status_code=410))

    monkeypatch.setattr(push_service, 'webpush', gone)
    body, status = push_service.send_push(str(notification['_id']))
    assert status == 410

    prefs = NotificationPreferences.get_preferences(notification['user_id'])
    assert prefs['push_subscription'] is None
    assert prefs['push_enabled'] is False
    assert Notification.find_by_id(notification['_id'])['push_error'] == 'Subscription expired'


def test_other_push_failures_are_500(notification, monkeypatch):
    def broken(**kwargs):
        raise WebPushException('Push failed: 400 Bad Request', response=SimpleNamespace(status_code=400))

    monkeypatch.setattr(push_service, 'webpush', broken)
    body, status = push_service.send_push(str(notification['_id']))
    assert status == 500
    assert 'Bad Request' in Notification.find_by_id(notification['_id'])['push_error']
    assert NotificationPreferences.get_preferences(notification['user_id'])['push_subscription'] == SUBSCRIPTION


def test_send_push_endpoint_requires_cron_secret(client, notification, webpush_calls, monkeypatch):
    monkeypatch.setattr(Config, 'CRON_SECRET', 's3cret')
    payload = {'notificationId': str(notification['_id'])}
    assert client.post('/api/notifications/send-push', json=payload).status_code == 401

    r = client.post('/api/notifications/send-push', json=payload, headers={'Authorization': 'Bearer s3cret'})
    assert r.status_code == 200
    assert len(webpush_calls) == 1


def test_cron_endpoints(client, monkeypatch):
    monkeypatch.setattr(Config, 'CRON_SECRET', 's3cret')
    assert client.get('/api/cron/process-notifications').status_code == 401
    assert client.post('/api/cron/check-event-notifications', headers={'Authorization': 'Bearer wrong'}).status_code == 401

    headers = {'Authorization': 'Bearer s3cret'}
    processed = client.get('/api/cron/process-notifications', headers=headers).get_json()
    assert processed['processed'] == 0
    assert processed['pushSent'] == 0
    assert processed['message'] == 'No notifications to process'
    checked = client.post('/api/cron/check-event-notifications', headers=headers).get_json()
    assert checked['success'] is True
    assert set(checked) == {'success', 'message', 'farrowingAlerts', 'weaningReminders', 'breedingReminders',
                            'pregnancyCheckReminders', 'errors'}


def test_cron_endpoints_open_without_secret(client):
    assert client.get('/api/cron/process-notifications').status_code == 200

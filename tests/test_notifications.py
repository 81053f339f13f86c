from datetime import datetime, timedelta
from types import SimpleNamespace
import pytest
from pymongo.errors import PyMongoError
from sowtracker import db
from sowtracker.models.sow import Sow
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.breeding import BreedingAttempt
from sowtracker.models.notification import Notification, ScheduledNotification, NotificationPreferences
from sowtracker.services import notification_service, notification_cron
from sowtracker.services.notification_worker import NotificationWorker

NOW = datetime(2024, 6, 15, 8, 0)
SUBSCRIPTION = {'endpoint': 'https://push.example.com/abc', 'keys': {'p256dh': 'key', 'auth': 'secret'}}


def test_reminders_skip_past_times(owner):
    expected = NOW + timedelta(days=5)
    created = notification_service.schedule_farrowing_reminders('farrowing-1', 'S-7', expected, owner['_id'], now=NOW)
    assert created == 2
    rows = ScheduledNotification.find_pending_for_user(owner['_id'])
    assert [r['scheduled_for'] for r in rows] == [expected - timedelta(days=3), expected - timedelta(days=1)]
    assert rows[0]['body'] == 'Sow S-7 is expected to farrow in 3 days'
    assert rows[1]['body'] == 'Sow S-7 is expected to farrow in 1 day'


def test_reminders_respect_preference_flag(owner):
    NotificationPreferences.update_preferences(owner['_id'], {'notify_weaning': False})
    assert notification_service.schedule_weaning_reminders('f-1', 'S-1', NOW + timedelta(days=10), owner['_id'], now=NOW) == 0


def test_cancel_scheduled_notifications(owner):
    notification_service.schedule_pregnancy_check_reminders('attempt-1', 'S-1', NOW + timedelta(days=20), owner['_id'], now=NOW)
    assert notification_service.cancel_scheduled_notifications(owner['_id'], 'attempt-1') == 1
    assert ScheduledNotification.find_pending_for_user(owner['_id']) == []


def test_task_reminder_wording(owner):
    overdue = notification_service.send_task_reminder('t-1', 'Vaccinate', NOW - timedelta(days=2), owner['_id'], now=NOW)
    assert overdue['title'] == 'Overdue Task'
    today = notification_service.send_task_reminder('t-2', 'Vaccinate', datetime(2024, 6, 15), owner['_id'], now=NOW)
    assert today['message'] == 'Task "Vaccinate" is due today'


def test_transfer_notifications_off_by_default(owner):
    assert notification_service.send_transfer_notification('x', owner['_id'], 'Transfer', 'msg') is None


def test_preferences_validation(owner):
    with pytest.raises(ValueError, match='true or false'):
        NotificationPreferences.update_preferences(owner['_id'], {'notify_tasks': 'yes'})
    with pytest.raises(ValueError, match='non-negative'):
        NotificationPreferences.update_preferences(owner['_id'], {'farrowing_reminder_days': [3, -1]})
    with pytest.raises(ValueError, match='HH:MM'):
        NotificationPreferences.update_preferences(owner['_id'], {'quiet_hours_start': 'late'})
    with pytest.raises(ValueError, match='timezone'):
        NotificationPreferences.update_preferences(owner['_id'], {'timezone': 'Mars/Olympus_Mons'})

    prefs = NotificationPreferences.update_preferences(owner['_id'], {'farrowing_reminder_days': [1, 3, 3]})
    assert prefs['farrowing_reminder_days'] == [3, 1]
    assert prefs['notify_breeding'] is True


def test_quiet_hours():
    overnight = {'quiet_hours_start': '22:00', 'quiet_hours_end': '06:00'}
    assert NotificationPreferences.in_quiet_hours(overnight, datetime(2024, 1, 1, 23, 30))
    assert NotificationPreferences.in_quiet_hours(overnight, datetime(2024, 1, 1, 5, 59))
    assert not NotificationPreferences.in_quiet_hours(overnight, datetime(2024, 1, 1, 6, 0))
    daytime = {'quiet_hours_start': '12:00', 'quiet_hours_end': '13:00'}
    assert NotificationPreferences.in_quiet_hours(daytime, datetime(2024, 1, 1, 12, 15))
    assert not NotificationPreferences.in_quiet_hours({}, datetime(2024, 1, 1, 12, 15))


def test_quiet_hours_use_preference_timezone():
    pacific = {'quiet_hours_start': '22:00', 'quiet_hours_end': '06:00', 'timezone': 'America/Los_Angeles'}
    # 06:30 UTC is 23:30 the previous evening in Los Angeles (PDT)
    assert NotificationPreferences.in_quiet_hours(pacific, datetime(2024, 6, 15, 6, 30))
    assert not NotificationPreferences.in_quiet_hours(pacific, datetime(2024, 6, 15, 18, 0))
    utc = dict(pacific, timezone='UTC')
    assert not NotificationPreferences.in_quiet_hours(utc, datetime(2024, 6, 15, 6, 30))


@pytest.fixture
def push_calls(monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        return SimpleNamespace(ok=True, status_code=200, text='')

    monkeypatch.setattr(notification_cron.requests, 'post', fake_post)
    return calls


def test_process_due_materializes_and_pushes(owner, push_calls):
    NotificationPreferences.save_push_subscription(owner['_id'], SUBSCRIPTION)
    due = ScheduledNotification.schedule(owner['_id'], 'farrowing', 'Farrowing Alert: S-1', 'Soon', NOW - timedelta(minutes=5),
                                         action_url='/farrowings/active', related_id='f-1')
    ScheduledNotification.schedule(owner['_id'], 'farrowing', 'Later', 'Later', NOW + timedelta(hours=1))

    results = notification_cron.process_due_notifications(now=NOW)
    assert results == {'processed': 1, 'pushSent': 1, 'pushFailed': 0, 'pushSkipped': 0, 'errors': []}

    notification = Notification.find_for_user(owner['_id'])[0]
    assert notification['message'] == 'Soon'
    assert notification['related_id'] == 'f-1'
    assert push_calls[0]['url'] == 'https://farm.example.com/api/notifications/send-push'
    assert push_calls[0]['json'] == {'notificationId': str(notification['_id'])}
    assert push_calls[0]['timeout'] == 10
    assert 'Authorization' not in push_calls[0]['headers']
    assert db.scheduled_notifications.find_one({'_id': due['_id']})['sent'] is True

    assert notification_cron.process_due_notifications(now=NOW)['processed'] == 0


def test_process_due_skips_push_in_quiet_hours(owner, push_calls):
    NotificationPreferences.save_push_subscription(owner['_id'], SUBSCRIPTION)
    # NOW is 08:00 UTC, 01:00 in the default Los Angeles timezone
    NotificationPreferences.update_preferences(owner['_id'], {'quiet_hours_start': '00:00', 'quiet_hours_end': '02:00'})
    ScheduledNotification.schedule(owner['_id'], 'task', 'Task', 'Do it', NOW - timedelta(minutes=1))

    results = notification_cron.process_due_notifications(now=NOW)
    assert results['processed'] == 1
    assert results['pushSkipped'] == 1
    assert push_calls == []


def test_process_due_counts_push_failures(owner, monkeypatch):
    NotificationPreferences.save_push_subscription(owner['_id'], SUBSCRIPTION)
    ScheduledNotification.schedule(owner['_id'], 'task', 'Task', 'Do it', NOW - timedelta(minutes=1))
    monkeypatch.setattr(notification_cron.requests, 'post',
                        lambda *a, **k: SimpleNamespace(ok=False, status_code=500, text='boom'))
    monkeypatch.setattr(notification_cron.Config, 'CRON_SECRET', 's3cret')

    results = notification_cron.process_due_notifications(now=NOW)
    assert results['pushFailed'] == 1
    assert results['processed'] == 1


def test_process_due_continues_when_preferences_fail(owner, user_factory, push_calls, monkeypatch):
    other = user_factory('other@example.com')
    NotificationPreferences.save_push_subscription(other['_id'], SUBSCRIPTION)
    ScheduledNotification.schedule(owner['_id'], 'task', 'First', 'One', NOW - timedelta(minutes=2))
    ScheduledNotification.schedule(other['_id'], 'task', 'Second', 'Two', NOW - timedelta(minutes=1))

    real_get = NotificationPreferences.get_preferences

    def flaky_get(user_id):
        if str(user_id) == str(owner['_id']):
            raise PyMongoError('preferences unavailable')
        return real_get(user_id)

    monkeypatch.setattr(NotificationPreferences, 'get_preferences', staticmethod(flaky_get))
    results = notification_cron.process_due_notifications(now=NOW)
    assert results['processed'] == 2
    assert results['pushFailed'] == 1
    assert results['pushSent'] == 1
    assert len(results['errors']) == 1
    assert db.scheduled_notifications.count_documents({'sent': False}) == 0

    assert notification_cron.process_due_notifications(now=NOW)['processed'] == 0
    assert len(Notification.find_for_user(owner['_id'])) == 1


def test_check_event_notifications_schedules_once(org_code, owner):
    due_sow = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'name': 'Bella', 'birth_date': '2021-01-01'})
    Farrowing.create_farrowing(org_code, due_sow, datetime(2024, 6, 17) - timedelta(days=114))
    check_sow = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2021-01-01'})
    BreedingAttempt.create_attempt(org_code, check_sow, datetime(2024, 6, 15) - timedelta(days=21), None, 'natural',
                                   created_by=str(owner['_id']))

    results = notification_cron.check_event_notifications(now=NOW)
    assert results['farrowingAlerts'] == 1
    assert results['pregnancyCheckReminders'] == 1
    assert results['weaningReminders'] == 0
    assert results['errors'] == []

    alert = db.scheduled_notifications.find_one({'type': 'farrowing_alert'})
    assert alert['user_id'] == owner['_id']
    assert alert['body'] == 'Bella is expected to farrow in 2 days. Prepare farrowing pen.'
    assert alert['scheduled_for'] == datetime(2024, 6, 15, 9, 0)
    check = db.scheduled_notifications.find_one({'type': 'pregnancy_check'})
    assert check['body'] == 'S-2 is due for pregnancy check today (21 days post-breeding).'

    again = notification_cron.check_event_notifications(now=NOW + timedelta(hours=2))
    assert again['farrowingAlerts'] == 0
    assert again['pregnancyCheckReminders'] == 0


def test_weaning_and_breeding_reminders(org_code, owner):
    nursing_sow = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    nursing = Farrowing.create_farrowing(org_code, nursing_sow, datetime(2024, 1, 1))
    Farrowing.update_farrowing(org_code, nursing, {'actual_farrowing_date': datetime(2024, 5, 25)})

    weaned_sow = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2021-01-01'})
    weaned = Farrowing.create_farrowing(org_code, weaned_sow, datetime(2024, 1, 1))
    Farrowing.update_farrowing(org_code, weaned, {'actual_farrowing_date': datetime(2024, 5, 17),
                                                  'moved_out_of_farrowing_date': datetime(2024, 6, 9)})

    results = notification_cron.check_event_notifications(now=NOW)
    assert results['weaningReminders'] == 1
    assert results['breedingReminders'] == 1
    body = db.scheduled_notifications.find_one({'type': 'weaning_reminder'})['body']
    assert body == 'Litter from S-1 is ready for weaning today. Piglets are 21 days old.'


def test_worker_run_once(app):
    events, delivered = NotificationWorker(app, interval=60).run_once()
    assert delivered['processed'] == 0
    assert events['farrowingAlerts'] == 0


def test_notification_routes(client, owner, login):
    first = Notification.create_notification(owner['_id'], 'task', 'One', 'First')
    Notification.create_notification(owner['_id'], 'task', 'Two', 'Second')
    login(owner)

    listing = client.get('/api/notifications').get_json()
    assert listing['unread_count'] == 2
    assert client.post(f"/api/notifications/{first['_id']}/read").status_code == 200
    assert client.get('/api/notifications/unread-count').get_json()['unread_count'] == 1
    assert client.post('/api/notifications/read-all').get_json()['updated'] == 1
    assert client.delete(f"/api/notifications/{first['_id']}").status_code == 200
    assert client.delete(f"/api/notifications/{first['_id']}").status_code == 404

    prefs = client.put('/api/notifications/preferences', json={'notify_tasks': False}).get_json()['preferences']
    assert prefs['notify_tasks'] is False
    assert client.post('/api/notifications/push-subscription', json={'subscription': {}}).status_code == 400
    assert client.post('/api/notifications/push-subscription', json={'subscription': SUBSCRIPTION}).status_code == 200
    assert NotificationPreferences.get_preferences(owner['_id'])['push_subscription'] == SUBSCRIPTION

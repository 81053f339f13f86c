from datetime import datetime, timedelta
import pytest
from sowtracker.models.sow import Sow
from sowtracker.models.breeding import BreedingAttempt
from sowtracker.models.calendar_event import CalendarEvent
from sowtracker.models.protocol import Protocol, ScheduledTask
from sowtracker.services import breeding_service

NOW = datetime(2024, 6, 15, 10, 0)


@pytest.fixture
def farrowing_protocol(org_code):
    protocol_id = Protocol.create_protocol(org_code, 'Piglet processing', 'farrowing')
    Protocol.add_task(org_code, protocol_id, 'Iron injection', days_offset=3)
    Protocol.add_task(org_code, protocol_id, 'Check teats', days_offset=0)
    Protocol.add_task(org_code, protocol_id, 'Castration', days_offset=3, task_order=1)
    return protocol_id


def test_protocol_validation(org_code):
    with pytest.raises(ValueError, match='name is required'):
        Protocol.create_protocol(org_code, ' ', 'breeding')
    with pytest.raises(ValueError):
        Protocol.create_protocol(org_code, 'Odd', 'birthday')
    with pytest.raises(LookupError):
        Protocol.add_task(org_code, '64b000000000000000000000', 'Task')


def test_generate_tasks_from_active_protocols(org_code, farrowing_protocol):
    inactive = Protocol.create_protocol(org_code, 'Old routine', 'farrowing', is_active=False)
    Protocol.add_task(org_code, inactive, 'Never', days_offset=1)

    created = ScheduledTask.generate_tasks(org_code, 'farrowing', datetime(2024, 6, 1, 14, 30))
    assert created == 3
    tasks = ScheduledTask.find_all(org_code)
    assert [(t['task_name'], t['due_date']) for t in tasks] == [
        ('Check teats', datetime(2024, 6, 1)),
        ('Iron injection', datetime(2024, 6, 4)),
        ('Castration', datetime(2024, 6, 4)),
    ]
    assert ScheduledTask.generate_tasks(org_code, 'weaning', datetime(2024, 6, 1)) == 0


def test_task_filters_and_completion(org_code, farrowing_protocol):
    ScheduledTask.generate_tasks(org_code, 'farrowing', datetime(2024, 6, 13))
    assert ScheduledTask.count_overdue(org_code, NOW) == 1
    overdue = ScheduledTask.find_all(org_code, 'overdue', NOW)
    assert [t['task_name'] for t in overdue] == ['Check teats']

    ScheduledTask.complete_task(org_code, overdue[0]['_id'], notes='Done early')
    assert ScheduledTask.count_overdue(org_code, NOW) == 0
    completed = ScheduledTask.find_all(org_code, 'completed', NOW)
    assert completed[0]['completed_notes'] == 'Done early'

    ScheduledTask.reopen_task(org_code, overdue[0]['_id'])
    assert len(ScheduledTask.find_all(org_code, 'pending', NOW)) == 3
    with pytest.raises(ValueError):
        ScheduledTask.find_all(org_code, 'someday')
    with pytest.raises(LookupError):
        ScheduledTask.complete_task(org_code, '64b000000000000000000000')


def test_litter_generates_protocol_tasks(org_code, farrowing_protocol):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    attempt_id = breeding_service.record_breeding(org_code, sow_id, {
        'breeding_date': '2024-01-01', 'breeding_time': '07:00', 'other_boar_description': 'Big Red'
    }, None)
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id)
    breeding_service.record_litter(org_code, farrowing_id, {'actual_farrowing_date': '2024-04-24', 'live_piglets': 10})

    tasks = ScheduledTask.find_all(org_code)
    assert len(tasks) == 3
    assert all(str(t['sow_id']) == sow_id for t in tasks)
    assert ScheduledTask.find_next_for_sow(org_code, sow_id, datetime(2024, 4, 25))['due_date'] == datetime(2024, 4, 27)


def test_calendar_event_validation(org_code):
    with pytest.raises(ValueError, match='Title'):
        CalendarEvent.create_event(org_code, {'event_date': '2024-06-01'})
    with pytest.raises(ValueError, match='event date is required'):
        CalendarEvent.create_event(org_code, {'title': 'Vet visit'})
    with pytest.raises(ValueError, match='HH:MM'):
        CalendarEvent.create_event(org_code, {'title': 'Vet', 'event_date': '2024-06-01', 'all_day': False, 'start_time': 'noon'})

    event_id = CalendarEvent.create_event(org_code, {'title': 'Vet', 'event_date': '2024-06-01', 'all_day': False,
                                                     'start_time': '09:30:00', 'priority': 'high'})
    event = CalendarEvent.find_by_id(org_code, event_id)
    assert event['start_time'] == '09:30'
    CalendarEvent.update_event(org_code, event_id, {'all_day': True})
    assert CalendarEvent.find_by_id(org_code, event_id)['start_time'] is None


def test_calendar_feed_merges_milestones(org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'name': 'Bella', 'birth_date': '2021-01-01'})
    BreedingAttempt.create_attempt(org_code, sow_id, datetime(2024, 5, 20), None, 'natural')
    CalendarEvent.create_event(org_code, {'title': 'Feed delivery', 'event_date': '2024-06-03'})

    items = CalendarEvent.build_feed(org_code, datetime(2024, 6, 1), datetime(2024, 6, 30))
    assert [(i['type'], i['title'], i['date']) for i in items] == [
        ('customEvent', 'Feed delivery', datetime(2024, 6, 3)),
        ('pregnancyCheck', 'Pregnancy check: Bella', datetime(2024, 6, 10)),
    ]


def test_schedule_routes(client, organization, owner, login, org_code):
    login(owner)
    base = f"/api/organizations/{organization['_id']}"
    r = client.post(base + '/protocols', json={
        'name': 'Breeding follow-up', 'trigger_event': 'breeding',
        'tasks': [{'task_name': 'Heat check', 'days_offset': 18}, {'task_name': 'Scan', 'days_offset': 28}]
    })
    assert r.status_code == 201, r.get_json()
    assert [t['task_name'] for t in r.get_json()['protocol']['tasks']] == ['Heat check', 'Scan']

    ScheduledTask.generate_tasks(org_code, 'breeding', datetime.utcnow() - timedelta(days=20))
    tasks = client.get(base + '/tasks?filter=overdue').get_json()['tasks']
    assert [t['task_name'] for t in tasks] == ['Heat check']
    assert client.get(base + '/tasks?filter=bogus').status_code == 400

    sent = client.post(base + '/tasks/send-reminders').get_json()
    assert sent['sent'] == 1
    done = client.post(f"{base}/tasks/{tasks[0]['id']}/complete", json={'notes': 'Standing heat'})
    assert done.get_json()['task']['is_completed'] is True

    event = client.post(base + '/calendar/events', json={'title': 'Vet', 'event_date': '2024-06-05'})
    assert event.status_code == 201
    feed = client.get(base + '/calendar?start=2024-06-01&end=2024-06-30').get_json()
    assert feed['items'][0]['title'] == 'Vet'
    assert client.get(base + '/calendar?start=2024-06-30&end=2024-06-01').status_code == 400

from datetime import datetime, timedelta
import pytest
from sowtracker import get_org_db
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.breeding import BreedingAttempt, MatrixTreatment
from sowtracker.models.health import HealthRecord
from sowtracker.models.feedback import Feedback
from sowtracker.services.dashboard_service import get_dashboard_stats

NOW = datetime(2024, 6, 15, 10, 0)


def test_dashboard_stats(org_code):
    active = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    culled = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2021-01-01'})
    Sow.set_status(org_code, culled, 'culled')
    gone = Sow.create_sow(org_code, {'ear_tag': 'S-3', 'birth_date': '2021-01-01'})
    Sow.delete_sow(org_code, gone)
    Boar.create_boar(org_code, {'ear_tag': 'B-1', 'breed': 'Duroc'})

    nursing = Farrowing.create_farrowing(org_code, active, datetime(2024, 2, 10))
    Farrowing.update_farrowing(org_code, nursing, {'actual_farrowing_date': datetime(2024, 6, 3), 'live_piglets': 11})
    Farrowing.create_farrowing(org_code, culled, NOW - timedelta(days=110))
    get_org_db(org_code).piglets.insert_many([{'status': 'weaned'}, {'status': 'weaned'}, {'status': 'nursing'}])

    MatrixTreatment.create_treatments(org_code, [culled], '2024-06-13')
    BreedingAttempt.create_attempt(org_code, active, datetime(2024, 5, 20), None, 'natural')
    BreedingAttempt.create_attempt(org_code, active, datetime(2024, 6, 10), None, 'natural')

    stats = get_dashboard_stats(org_code, NOW)
    assert stats == {
        'total_sows': 2,
        'active_sows': 1,
        'total_boars': 1,
        'currently_farrowing': 1,
        'nursing_piglets': 11,
        'weaned_piglets': 2,
        'expected_heats_this_week': 1,
        'upcoming_farrowings': 1,
        'overdue_tasks': 0,
        'pending_pregnancy_checks': 1,
    }


def test_dashboard_route(client, organization, owner, login):
    login(owner)
    r = client.get(f"/api/organizations/{organization['_id']}/dashboard")
    assert r.status_code == 200
    assert r.get_json()['stats']['total_sows'] == 0


def test_health_record_validation(org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    with pytest.raises(ValueError, match='Title'):
        HealthRecord.create_record(org_code, 'sow', sow_id, {'title': ' '})
    with pytest.raises(ValueError, match='negative'):
        HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Check', 'cost': -5})
    with pytest.raises(ValueError):
        HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Check', 'record_type': 'haircut'})
    with pytest.raises(ValueError):
        HealthRecord.create_record(org_code, 'cow', sow_id, {'title': 'Check'})


def test_due_soon_and_overdue(org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Booster', 'next_due_date': '2024-06-20'})
    HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Recheck', 'next_due_date': '2024-06-01'})
    HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Annual', 'next_due_date': '2024-09-01'})

    assert [r['title'] for r in HealthRecord.find_due_soon(org_code, NOW)] == ['Booster']
    assert [r['title'] for r in HealthRecord.find_overdue(org_code, NOW)] == ['Recheck']


def test_bulk_vaccine_records(org_code):
    first = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    second = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2021-01-01'})
    with pytest.raises(ValueError, match='at least one'):
        HealthRecord.create_vaccine_records(org_code, 'sow', [], 'FluSure')
    with pytest.raises(ValueError, match='Vaccine name'):
        HealthRecord.create_vaccine_records(org_code, 'sow', [first], ' ')

    records = HealthRecord.create_vaccine_records(org_code, 'sow', [first, second], 'FluSure',
                                                  vaccine_type='Influenza', dosage='2 ml', cost=3.5)
    assert len(records) == 2
    assert records[0]['record_type'] == 'vaccine'
    assert records[0]['description'] == 'Vaccine Type: Influenza\nDosage: 2 ml'
    assert HealthRecord.total_cost_for_animal(org_code, 'sow', second) == 3.5


def test_health_routes(client, organization, owner, member_factory, login, org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    base = f"/api/organizations/{organization['_id']}"

    vet = member_factory(organization, 'vet')
    login(vet)
    r = client.post(f'{base}/sows/{sow_id}/health-records', json={'title': 'Lame left hind', 'record_type': 'injury',
                                                                   'cost': 45})
    assert r.status_code == 201, r.get_json()
    record_id = r.get_json()['health_record']['id']
    assert client.post(f'{base}/sows/64b000000000000000000000/health-records', json={'title': 'x'}).status_code == 404

    listing = client.get(f'{base}/health-records').get_json()['health_records']
    assert listing[0]['animal_ear_tag'] == 'S-1'
    animal = client.get(f'{base}/sows/{sow_id}/health-records').get_json()
    assert animal['total_cost'] == 45

    r = client.post(f'{base}/health-records/vaccines', json={'animal_ids': [sow_id], 'vaccine_name': 'Ery'})
    assert r.get_json()['created'] == 1

    assert client.put(f'{base}/health-records/{record_id}', json={'cost': 50}).get_json()['health_record']['cost'] == 50
    export = client.get(f'{base}/health-records/export?record_type=injury').get_data(as_text=True).split('\n')
    assert export[0].startswith('Date,Animal Type,Animal,Record Type,Title')
    assert len([line for line in export if line]) == 2

    assert client.delete(f'{base}/health-records/{record_id}').status_code == 200
    assert client.get(f'{base}/health-records/{record_id}').status_code == 404

    client.post('/api/auth/logout')
    reader = member_factory(organization, 'readonly')
    login(reader)
    assert client.post(f'{base}/sows/{sow_id}/health-records', json={'title': 'x'}).status_code == 403


def test_feedback(client, owner, user_factory, login):
    with pytest.raises(ValueError):
        Feedback.create_feedback(owner, {'title': 'Only a title'})

    login(owner)
    r = client.post('/api/feedback', json={'title': 'Export', 'description': 'Add PDF export', 'feedback_type': 'feature'})
    assert r.status_code == 201
    feedback_id = r.get_json()['id']
    assert len(client.get('/api/feedback/mine').get_json()['feedback']) == 1
    assert client.get('/api/feedback').status_code == 403
    client.post('/api/auth/logout')

    admin = user_factory('admin@example.com', is_admin=True)
    login(admin)
    assert client.put(f'/api/feedback/{feedback_id}', json={'status': 'planned'}).status_code == 200
    assert client.put(f'/api/feedback/{feedback_id}', json={'status': 'maybe'}).status_code == 400
    planned = client.get('/api/feedback?status=planned').get_json()['feedback']
    assert [f['title'] for f in planned] == ['Export']

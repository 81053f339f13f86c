from datetime import datetime, timedelta
import pytest
from sowtracker import db
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.breeding import BreedingAttempt
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.piglet import Piglet
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.services import breeding_service


def _days_ago(days):
    now = datetime.utcnow()
    return (datetime(now.year, now.month, now.day) - timedelta(days=days)).strftime('%Y-%m-%d')


@pytest.fixture
def sow_id(org_code):
    return Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2022-01-01', 'breed': 'Landrace'})


@pytest.fixture
def boar_id(org_code):
    return Boar.create_boar(org_code, {'ear_tag': 'B-1', 'name': 'Hamlet', 'breed': 'Duroc'})


def _breed(org_code, sow_id, user_id=None, **overrides):
    data = {'breeding_date': _days_ago(30), 'breeding_time': '08:30', 'breeding_method': 'natural',
            'other_boar_description': 'Neighbour boar'}
    data.update(overrides)
    return breeding_service.record_breeding(org_code, sow_id, data, user_id)


def test_breeding_date_cannot_be_in_future(org_code, sow_id):
    with pytest.raises(ValueError, match='future'):
        _breed(org_code, sow_id, breeding_date=_days_ago(-2))


def test_boar_and_description_are_exclusive(org_code, sow_id, boar_id):
    with pytest.raises(ValueError, match='not both'):
        _breed(org_code, sow_id, boar_id=boar_id)
    with pytest.raises(ValueError, match='not both'):
        _breed(org_code, sow_id, other_boar_description='')


def test_breeding_time_required(org_code, sow_id):
    with pytest.raises(ValueError, match='time'):
        _breed(org_code, sow_id, breeding_time='')


def test_only_active_sows_can_be_bred(org_code, sow_id):
    Sow.set_status(org_code, sow_id, 'culled')
    with pytest.raises(ValueError, match='active'):
        _breed(org_code, sow_id)


def test_described_boar_is_prefixed_into_notes(org_code, sow_id):
    attempt_id = _breed(org_code, sow_id, notes='Stood well')
    attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
    assert attempt['notes'] == 'Boar: Neighbour boar\n\nStood well'
    assert attempt['breeding_cycle_complete'] is True
    assert attempt['breeding_time'].hour == 8 and attempt['breeding_time'].minute == 30
    assert attempt['result'] == 'pending'


def test_ai_description_prefix(org_code, sow_id):
    attempt_id = _breed(org_code, sow_id, breeding_method='ai', other_boar_description='Genetics Co lot 9')
    attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
    assert attempt['notes'] == 'AI Semen: Genetics Co lot 9'
    assert attempt['breeding_cycle_complete'] is False


def test_ai_semen_uses_a_straw(org_code, sow_id):
    semen_id = Boar.create_boar(org_code, {'breed': 'Duroc', 'boar_type': 'ai_semen', 'semen_straws': 1})
    _breed(org_code, sow_id, breeding_method='ai', other_boar_description=None, boar_id=semen_id)
    assert Boar.find_by_id(org_code, semen_id)['semen_straws'] == 0

    second = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2022-01-01'})
    with pytest.raises(ValueError, match='Insufficient semen straws'):
        _breed(org_code, second, breeding_method='ai', other_boar_description=None, boar_id=semen_id)


def test_unknown_boar_is_lookup_error(org_code, sow_id):
    with pytest.raises(LookupError):
        _breed(org_code, sow_id, other_boar_description=None, boar_id='64b000000000000000000000')


def test_breeding_with_user_notifies_and_schedules_check(org_code, sow_id, boar_id, owner):
    attempt_id = _breed(org_code, sow_id, user_id=owner['_id'], other_boar_description=None,
                        boar_id=boar_id, breeding_date=_days_ago(0))
    notification = db.notifications.find_one({'user_id': owner['_id'], 'type': 'breeding'})
    assert notification['message'] == 'Sow S-1 bred with boar Hamlet'
    reminders = list(db.scheduled_notifications.find({'related_id': attempt_id}))
    assert len(reminders) == 1
    assert reminders[0]['type'] == 'pregnancy_check'


def test_bulk_breeding_reports_per_sow_errors(org_code, sow_id):
    culled = Sow.create_sow(org_code, {'ear_tag': 'S-9', 'birth_date': '2022-01-01'})
    Sow.set_status(org_code, culled, 'culled')
    data = {'breeding_date': _days_ago(1), 'breeding_time': '07:00', 'other_boar_description': 'Big Red'}
    result = breeding_service.bulk_record_breeding(org_code, [sow_id, culled], data, None)
    assert len(result['created']) == 1
    assert result['errors'][0]['sow_id'] == culled


def test_breeding_status_needs_pregnancy_check(org_code, sow_id):
    _breed(org_code, sow_id, breeding_date=_days_ago(19))
    status = BreedingAttempt.get_breeding_status(org_code, sow_id)
    assert status['is_bred'] is True
    assert status['days_since_breeding'] == 19
    assert status['status_label'] == 'Pregnancy check window'
    assert status['needs_pregnancy_check'] is True


def test_confirm_pregnancy_opens_farrowing(org_code, sow_id):
    attempt_id = _breed(org_code, sow_id)
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id, _days_ago(5), 'Scanned positive')

    attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
    assert attempt['result'] == 'pregnant'
    assert attempt['notes'].endswith(f'Pregnancy confirmed on {_days_ago(5)}: Scanned positive')
    farrowing = Farrowing.find_by_id(org_code, farrowing_id)
    assert farrowing['expected_farrowing_date'] == attempt['breeding_date'] + timedelta(days=114)

    with pytest.raises(ValueError, match='already been recorded'):
        breeding_service.confirm_pregnancy(org_code, attempt_id)


def test_returned_to_heat_clears_bred_status(org_code, sow_id):
    attempt_id = _breed(org_code, sow_id)
    breeding_service.mark_returned_to_heat(org_code, attempt_id)
    assert BreedingAttempt.find_by_id(org_code, attempt_id)['result'] == 'returned_to_heat'
    assert BreedingAttempt.get_breeding_status(org_code, sow_id)['is_bred'] is False


def test_record_litter_assigns_notches_and_advances_counter(org_code, sow_id):
    FarmSettings.update_settings(org_code, {'ear_notch_current_litter': 7})
    attempt_id = _breed(org_code, sow_id, breeding_date=_days_ago(115))
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id)

    result = breeding_service.record_litter(org_code, farrowing_id, {
        'actual_farrowing_date': _days_ago(1),
        'live_piglets': 3,
        'stillborn': 1,
        'piglets': [{'sex': 'male'}, {'sex': 'female'}, {'sex': 'female', 'right_ear_notch': 2, 'left_ear_notch': 9}]
    })
    assert result == {'piglets_created': 3, 'litter_number': 7}
    assert FarmSettings.get_settings(org_code)['ear_notch_current_litter'] == 8

    notches = sorted((p['right_ear_notch'], p['left_ear_notch']) for p in Piglet.find_by_farrowing(org_code, farrowing_id))
    assert notches == [(2, 9), (7, 1), (7, 2)]

    farrowing = Farrowing.find_by_id(org_code, farrowing_id)
    assert farrowing['live_piglets'] == 3
    assert farrowing['mummified'] == 0
    assert farrowing['moved_to_farrowing_date'] == farrowing['actual_farrowing_date']
    assert BreedingAttempt.get_breeding_status(org_code, sow_id)['status_label'] == 'Farrowed'

    with pytest.raises(ValueError, match='already been recorded'):
        breeding_service.record_litter(org_code, farrowing_id, {'actual_farrowing_date': _days_ago(1)})


def test_record_litter_validation(org_code, sow_id):
    farrowing_id = breeding_service.confirm_pregnancy(org_code, _breed(org_code, sow_id))
    with pytest.raises(ValueError, match='future'):
        breeding_service.record_litter(org_code, farrowing_id, {'actual_farrowing_date': _days_ago(-1)})
    with pytest.raises(ValueError, match='negative'):
        breeding_service.record_litter(org_code, farrowing_id, {'actual_farrowing_date': _days_ago(0), 'stillborn': -1})
    with pytest.raises(ValueError, match='More piglets'):
        breeding_service.record_litter(org_code, farrowing_id, {
            'actual_farrowing_date': _days_ago(0), 'live_piglets': 1, 'piglets': [{}, {}]
        })


def test_delete_farrowing_unlinks_attempt_and_piglets(org_code, sow_id):
    attempt_id = _breed(org_code, sow_id, breeding_date=_days_ago(115))
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id)
    breeding_service.record_litter(org_code, farrowing_id, {
        'actual_farrowing_date': _days_ago(1), 'live_piglets': 2, 'piglets': [{}, {}]
    })

    Farrowing.delete_farrowing(org_code, farrowing_id)
    assert Farrowing.find_by_id(org_code, farrowing_id) is None
    assert BreedingAttempt.find_by_id(org_code, attempt_id)['farrowing_id'] is None
    piglets = Piglet.find_all(org_code, sow_id=sow_id)
    assert len(piglets) == 2
    assert {p['farrowing_id'] for p in piglets} == {None}


def test_wean_litter(org_code, sow_id):
    farrowing_id = breeding_service.confirm_pregnancy(org_code, _breed(org_code, sow_id, breeding_date=_days_ago(140)))
    with pytest.raises(ValueError, match='Record the litter'):
        breeding_service.wean_litter(org_code, farrowing_id, {'weaning_date': _days_ago(0)})

    breeding_service.record_litter(org_code, farrowing_id, {
        'actual_farrowing_date': _days_ago(22), 'live_piglets': 2, 'piglets': [{}, {}]
    })
    piglets = Piglet.find_by_farrowing(org_code, farrowing_id)
    with pytest.raises(ValueError, match='before the farrowing date'):
        breeding_service.wean_litter(org_code, farrowing_id, {'weaning_date': _days_ago(30)})

    weaned = breeding_service.wean_litter(org_code, farrowing_id, {
        'weaning_date': _days_ago(0),
        'piglets': [{'id': str(piglets[0]['_id']), 'weaning_weight': 6.5}]
    })
    assert weaned == 2
    statuses = {p['status'] for p in Piglet.find_by_farrowing(org_code, farrowing_id)}
    assert statuses == {'weaned'}
    assert Piglet.find_by_id(org_code, piglets[0]['_id'])['weaning_weight'] == 6.5
    assert Farrowing.find_by_id(org_code, farrowing_id)['moved_out_of_farrowing_date'] is not None

    with pytest.raises(ValueError, match='already been weaned'):
        breeding_service.wean_litter(org_code, farrowing_id, {'weaning_date': _days_ago(0)})


def test_list_bred_sows_filters_by_pregnancy_status(org_code, sow_id):
    other = Sow.create_sow(org_code, {'ear_tag': 'S-2', 'birth_date': '2022-01-01'})
    _breed(org_code, sow_id)
    breeding_service.confirm_pregnancy(org_code, _breed(org_code, other))

    assert [r['ear_tag'] for r in breeding_service.list_bred_sows(org_code, 'pending')] == ['S-1']
    confirmed = breeding_service.list_bred_sows(org_code, 'confirmed')
    assert [r['ear_tag'] for r in confirmed] == ['S-2']
    assert confirmed[0]['needs_pregnancy_check'] is False

from datetime import datetime, timedelta
import pytest
from bson import ObjectId
from sowtracker import db, get_org_db
from sowtracker.models.sow import Sow
from sowtracker.models.housing import HousingUnit, LocationHistory
from sowtracker.services import compliance, housing_service
from sowtracker.services.compliance_pdf import generate_farm_wide_pdf, generate_individual_pdf

NOW = datetime(2024, 6, 15, 12, 0)


def _sow(org_code, tag):
    return Sow.create_sow(org_code, {'ear_tag': tag, 'birth_date': '2022-01-01', 'breed': 'Yorkshire'})


def test_unit_square_footage_and_prop12_capacity(org_code):
    unit_id = HousingUnit.create_unit(org_code, {'name': 'Pen A', 'type': 'gestation', 'length_feet': 20, 'width_feet': 12},
                                      prop12_enabled=True)
    unit = HousingUnit.find_by_id(org_code, unit_id)
    assert unit['square_footage'] == 240
    assert unit['max_capacity'] == 10

    with pytest.raises(ValueError, match='Square footage is required'):
        HousingUnit.create_unit(org_code, {'name': 'Pen B', 'type': 'gestation'}, prop12_enabled=True)
    with pytest.raises(ValueError, match='greater than 0'):
        HousingUnit.create_unit(org_code, {'name': 'Pen C', 'length_feet': 0})


def test_bulk_create_names_units(org_code):
    created = HousingUnit.bulk_create_units(org_code, 'Barn', 1, 2, 1, 3, 'gestation', square_footage=48, capacity_per_unit=2)
    assert created == 6
    names = [u['name'] for u in HousingUnit.find_all(org_code)]
    assert 'Barn 1 - Pen 1' in names and 'Barn 2 - Pen 3' in names

    with pytest.raises(ValueError, match='less than or equal'):
        HousingUnit.bulk_create_units(org_code, 'Barn', 3, 1, 1, 1)


def test_assign_housing_moves_and_closes_history(org_code):
    sow_id = _sow(org_code, 'S-1')
    first = HousingUnit.create_unit(org_code, {'name': 'Pen 1', 'type': 'gestation'})
    second = HousingUnit.create_unit(org_code, {'name': 'Crate 1', 'type': 'farrowing'})

    housing_service.assign_housing(org_code, sow_id, first, reason='Weaned', moved_at='2024-06-01T08:00:00')
    with pytest.raises(ValueError, match='already in this housing unit'):
        housing_service.assign_housing(org_code, sow_id, first)

    housing_service.assign_housing(org_code, sow_id, second, moved_at='2024-06-10T08:00:00')
    history = housing_service.location_history_for_sow(org_code, sow_id)
    assert [h['housing_unit_name'] for h in history] == ['Crate 1', 'Pen 1']
    assert history[0]['moved_out_date'] is None
    assert history[1]['moved_out_date'] == datetime(2024, 6, 10, 8, 0)
    assert Sow.find_by_id(org_code, sow_id)['housing_unit_id'] == ObjectId(second)

    housing_service.assign_housing(org_code, sow_id, None)
    assert LocationHistory.find_open(org_code, sow_id) is None
    assert Sow.find_by_id(org_code, sow_id)['housing_unit_id'] is None


def test_assign_housing_respects_capacity(org_code):
    unit_id = HousingUnit.create_unit(org_code, {'name': 'Small pen', 'max_capacity': 1})
    housing_service.assign_housing(org_code, _sow(org_code, 'S-1'), unit_id)
    with pytest.raises(ValueError, match='maximum capacity'):
        housing_service.assign_housing(org_code, _sow(org_code, 'S-2'), unit_id)


def test_undersized_prop12_unit_takes_no_sows(org_code):
    unit_id = HousingUnit.create_unit(org_code, {'name': 'Tiny', 'type': 'gestation', 'square_footage': 20},
                                      prop12_enabled=True)
    assert HousingUnit.find_by_id(org_code, unit_id)['max_capacity'] == 0
    with pytest.raises(ValueError, match='maximum capacity'):
        housing_service.assign_housing(org_code, _sow(org_code, 'S-1'), unit_id)
    assert HousingUnit.current_occupancy(org_code, unit_id) == 0


def test_bulk_assign_reports_failures(org_code):
    unit_id = HousingUnit.create_unit(org_code, {'name': 'Pen', 'max_capacity': 1})
    result = housing_service.bulk_assign_housing(org_code, [_sow(org_code, 'S-1'), _sow(org_code, 'S-2')], unit_id)
    assert len(result['assigned']) == 1
    assert 'maximum capacity' in result['errors'][0]['message']


def test_delete_unit_requires_empty(org_code):
    unit_id = HousingUnit.create_unit(org_code, {'name': 'Pen'})
    housing_service.assign_housing(org_code, _sow(org_code, 'S-1'), unit_id)
    with pytest.raises(ValueError):
        HousingUnit.delete_unit(org_code, unit_id)


def test_space_per_sow_and_confinement_units():
    assert compliance.space_per_sow({'square_footage': 100, 'max_capacity': 5}) == 20.0
    assert compliance.space_per_sow({'square_footage': 30, 'max_capacity': 0}) == 30.0
    assert compliance.space_per_sow({'square_footage': None}) is None

    assert compliance.is_confinement_unit({'type': 'gestation', 'square_footage': 100, 'max_capacity': 5})
    assert not compliance.is_confinement_unit({'type': 'gestation', 'square_footage': 240, 'max_capacity': 10})
    assert not compliance.is_confinement_unit({'type': 'farrowing', 'square_footage': 20, 'max_capacity': 1})
    assert not compliance.is_confinement_unit({'type': 'gestation'})


def test_space_just_under_limit_is_confinement():
    unit = {'_id': ObjectId(), 'type': 'gestation', 'name': 'Pen', 'square_footage': 95.9, 'max_capacity': 4}
    assert compliance.is_confinement_unit(unit)
    sow = {'_id': ObjectId(), 'ear_tag': 'S-1', 'housing_unit_id': unit['_id']}
    entries = [{'housing_unit_id': unit['_id'], 'moved_in_date': NOW - timedelta(hours=2), 'moved_out_date': None}]
    row = compliance.evaluate_sow(sow, entries, {unit['_id']: unit}, NOW)
    assert row['floor_space'] == 24.0
    assert row['confinement_hours_24h'] == 2.0


def test_overlap_hours():
    window_start = NOW - timedelta(hours=24)
    assert compliance.overlap_hours(NOW - timedelta(hours=30), None, window_start, NOW) == 24
    assert compliance.overlap_hours(NOW - timedelta(hours=5), NOW - timedelta(hours=2), window_start, NOW) == 3
    assert compliance.overlap_hours(NOW - timedelta(days=3), NOW - timedelta(days=2), window_start, NOW) == 0


def test_evaluate_sow_limits():
    crate = {'_id': ObjectId(), 'type': 'gestation', 'name': 'Stall', 'square_footage': 14, 'max_capacity': 1}
    pen = {'_id': ObjectId(), 'type': 'gestation', 'name': 'Pen', 'square_footage': 240, 'max_capacity': 10}
    units = {crate['_id']: crate, pen['_id']: pen}
    sow = {'_id': ObjectId(), 'ear_tag': 'S-1', 'housing_unit_id': pen['_id']}

    entries = [
        {'housing_unit_id': crate['_id'], 'moved_in_date': NOW - timedelta(hours=10), 'moved_out_date': NOW - timedelta(hours=5)},
        {'housing_unit_id': pen['_id'], 'moved_in_date': NOW - timedelta(hours=5), 'moved_out_date': None},
    ]
    row = compliance.evaluate_sow(sow, entries, units, NOW)
    assert row['confinement_hours_24h'] == 5
    assert row['is_compliant'] is True
    assert row['at_risk'] is True
    assert row['floor_space'] == 24.0

    entries[0]['moved_in_date'] = NOW - timedelta(hours=12)
    row = compliance.evaluate_sow(sow, entries, units, NOW)
    assert row['confinement_hours_24h'] == 7
    assert row['is_compliant'] is False


def test_unmeasured_current_unit_is_at_risk():
    unit = {'_id': ObjectId(), 'type': 'gestation', 'name': 'Old pen'}
    sow = {'_id': ObjectId(), 'ear_tag': 'S-1', 'housing_unit_id': unit['_id']}
    row = compliance.evaluate_sow(sow, [], {unit['_id']: unit}, NOW)
    assert row['is_compliant'] is True
    assert row['at_risk'] is True


def test_compliance_report_and_alerts(org_code, organization, owner):
    stall = HousingUnit.create_unit(org_code, {'name': 'Stall', 'type': 'gestation', 'square_footage': 14, 'max_capacity': 1})
    pen = HousingUnit.create_unit(org_code, {'name': 'Pen', 'type': 'gestation', 'square_footage': 240, 'max_capacity': 10})
    confined = _sow(org_code, 'S-1')
    loose = _sow(org_code, 'S-2')
    housing_service.assign_housing(org_code, confined, stall, moved_at=(NOW - timedelta(days=3)).isoformat())
    housing_service.assign_housing(org_code, loose, pen, moved_at=(NOW - timedelta(days=3)).isoformat())

    report = compliance.compliance_report(org_code, now=NOW)
    assert report['summary'] == {'total': 2, 'compliant': 1, 'non_compliant': 1, 'at_risk': 1, 'compliance_rate': 50.0}
    by_tag = {r['sow_ear_tag']: r for r in report['sows']}
    assert by_tag['S-1']['confinement_hours_24h'] == 24
    assert by_tag['S-1']['confinement_hours_30d'] == 72

    rows = compliance.report_csv_rows(report)
    assert rows[0]['Compliant'] == 'No'
    assert rows[0]['24h Confinement Hours'] == '24.0'
    assert rows[0]['Report Date'] == '06/15/2024'

    assert compliance.send_compliance_alerts(organization, report) == 1
    alert = db.notifications.find_one({'type': 'compliance'})
    assert alert['user_id'] == owner['_id']
    assert alert['title'] == 'Compliance Alert: S-1'


def test_farm_wide_pdf(org_code):
    report = compliance.compliance_report(org_code, now=NOW)
    pdf = generate_farm_wide_pdf(report, 'Green & Sons')
    assert pdf.getvalue().startswith(b'%PDF')


def test_individual_pdf():
    row = {
        'sow_ear_tag': 'S-1', 'sow_name': 'Daisy', 'is_compliant': False, 'current_housing': None,
        'floor_space': None, 'confinement_hours_24h': 7.5, 'confinement_hours_30d': 30.0
    }
    history = [{'housing_unit_name': 'Stall', 'moved_in_date': NOW - timedelta(days=2), 'moved_out_date': None, 'reason': None}]
    pdf = generate_individual_pdf(row, history, 'Green Acres', now=NOW)
    assert pdf.getvalue().startswith(b'%PDF')


def test_compliance_routes(client, organization, owner, login, org_code):
    sow_id = _sow(org_code, 'S-1')
    login(owner)
    base = f"/api/organizations/{organization['_id']}/compliance"

    report = client.get(base + '/report').get_json()
    assert report['prop12_compliance_enabled'] is False
    assert report['report']['summary']['total'] == 1

    csv_resp = client.get(base + '/report/export')
    assert csv_resp.mimetype == 'text/csv'
    assert csv_resp.get_data(as_text=True).startswith('Ear Tag,Name,Compliant')

    pdf_resp = client.get(f'{base}/sows/{sow_id}/pdf')
    assert pdf_resp.status_code == 200
    assert pdf_resp.mimetype == 'application/pdf'
    assert 'prop12-sow-S-1-' in pdf_resp.headers['Content-Disposition']
    assert get_org_db(org_code).sows.count_documents({}) == 1

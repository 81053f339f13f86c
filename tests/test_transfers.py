import pytest
from sowtracker import db, get_org_db
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.health import HealthRecord
from sowtracker.models.notification import NotificationPreferences
from sowtracker.models.transfer import TransferRequest
from sowtracker.services import transfer_service


@pytest.fixture
def buyer(user_factory):
    return user_factory('buyer@example.com', full_name='Buyer')


@pytest.fixture
def buyer_org(organization_factory, buyer):
    return organization_factory('Buyer Farm', buyer)


@pytest.fixture
def sow_id(org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'T-1', 'name': 'Trudy', 'birth_date': '2021-04-01', 'breed': 'Berkshire'})
    HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Annual check', 'cost': 40})
    return sow_id


def test_request_validation(organization, owner, sow_id):
    with pytest.raises(ValueError, match='valid recipient'):
        transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': 'nobody'})
    with pytest.raises(ValueError, match='yourself'):
        transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': 'OWNER@example.com'})
    with pytest.raises(ValueError):
        transfer_service.request_transfer(organization, 'piglet', sow_id, owner, {'to_user_email': 'a@b.com'})
    with pytest.raises(LookupError):
        transfer_service.request_transfer(organization, 'boar', sow_id, owner, {'to_user_email': 'a@b.com'})

    transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': 'a@b.com'})
    with pytest.raises(ValueError, match='pending transfer'):
        transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': 'c@d.com'})


def test_recipient_with_account_is_notified(organization, owner, sow_id, buyer):
    NotificationPreferences.update_preferences(buyer['_id'], {'notify_transfers': True})
    transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': 'Buyer@Example.com'})
    notification = db.notifications.find_one({'user_id': buyer['_id']})
    assert notification['message'] == 'owner@example.com wants to transfer sow T-1 to you'


def test_accept_copies_sow_and_health_records(organization, owner, org_code, sow_id, buyer, buyer_org):
    request = transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': buyer['email']})
    result = transfer_service.accept_transfer(str(request['_id']), buyer, buyer_org['_id'])
    assert result['health_records_copied'] == 1

    copy = Sow.find_by_id(buyer_org['slug'], result['animal_id'])
    assert copy['ear_tag'] == 'T-1'
    assert copy['status'] == 'active'
    assert copy['transferred_from']['organization_id'] == organization['_id']
    assert copy['audit_log'][0]['description'] == 'Transferred from Green Acres'
    assert get_org_db(buyer_org['slug']).health_records.count_documents({'animal_id': result['animal_id']}) == 1

    source = Sow.find_by_id(org_code, sow_id, include_deleted=True)
    assert source['status'] == 'transferred'
    assert source['deleted_at'] is not None
    assert TransferRequest.find_by_id(request['_id'])['status'] == 'accepted'

    with pytest.raises(ValueError, match='no longer pending'):
        transfer_service.accept_transfer(str(request['_id']), buyer, buyer_org['_id'])


def test_retained_records_leave_source_sold(organization, owner, org_code, buyer, buyer_org):
    boar_id = Boar.create_boar(org_code, {'ear_tag': 'B-7', 'breed': 'Duroc'})
    request = transfer_service.request_transfer(organization, 'boar', boar_id, owner,
                                                {'to_user_email': buyer['email'], 'retain_records': True})
    transfer_service.accept_transfer(request['_id'], buyer, buyer_org['_id'])
    source = Boar.find_by_id(org_code, boar_id)
    assert source['status'] == 'sold'
    assert Boar.find_by_ear_tag(buyer_org['slug'], 'b-7') is not None


def test_accept_checks_recipient_and_access(organization, owner, sow_id, buyer, buyer_org, user_factory):
    request = transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': buyer['email']})
    stranger = user_factory('stranger@example.com')
    with pytest.raises(PermissionError):
        transfer_service.accept_transfer(request['_id'], stranger, buyer_org['_id'])
    with pytest.raises(PermissionError, match='write access'):
        transfer_service.accept_transfer(request['_id'], buyer, organization['_id'])


def test_accept_rejects_ear_tag_clash(organization, owner, sow_id, buyer, buyer_org):
    Sow.create_sow(buyer_org['slug'], {'ear_tag': 't-1', 'birth_date': '2020-01-01'})
    request = transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': buyer['email']})
    with pytest.raises(ValueError, match='already exists in Buyer Farm'):
        transfer_service.accept_transfer(request['_id'], buyer, buyer_org['_id'])
    assert TransferRequest.find_by_id(request['_id'])['status'] == 'pending'


def test_decline_and_cancel(organization, owner, sow_id, buyer):
    request = transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': buyer['email']})
    with pytest.raises(PermissionError):
        transfer_service.cancel_transfer(request['_id'], buyer)
    transfer_service.decline_transfer(request['_id'], buyer)
    assert TransferRequest.find_by_id(request['_id'])['status'] == 'declined'

    second = transfer_service.request_transfer(organization, 'sow', sow_id, owner, {'to_user_email': buyer['email']})
    transfer_service.cancel_transfer(second['_id'], owner)
    assert TransferRequest.find_by_id(second['_id'])['status'] == 'cancelled'


def test_transfer_routes(client, organization, owner, sow_id, buyer, buyer_org, login):
    login(owner)
    r = client.post(f"/api/organizations/{organization['_id']}/transfers",
                    json={'animal_type': 'sow', 'animal_id': sow_id, 'to_user_email': buyer['email']})
    assert r.status_code == 201
    request_id = r.get_json()['transfer']['id']
    assert len(client.get('/api/transfers/sent').get_json()['transfers']) == 1
    client.post('/api/auth/logout')

    login(buyer)
    received = client.get('/api/transfers/received').get_json()['transfers']
    assert [t['id'] for t in received] == [request_id]
    accepted = client.post(f'/api/transfers/{request_id}/accept', json={'organization_id': str(buyer_org['_id'])})
    assert accepted.status_code == 200, accepted.get_json()
    assert accepted.get_json()['health_records_copied'] == 1
    assert client.post(f'/api/transfers/{request_id}/decline').status_code == 400

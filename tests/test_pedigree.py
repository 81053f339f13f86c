from datetime import datetime, timedelta
import pytest
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.piglet import Piglet
from sowtracker.services import breeding_service
from sowtracker.services.pedigree import build_pedigree


def _days_ago(days):
    now = datetime.utcnow()
    return (datetime(now.year, now.month, now.day) - timedelta(days=days)).strftime('%Y-%m-%d')


@pytest.fixture
def family(org_code):
    """Grandparents on both sides, a sire and a dam"""
    grandsire = Boar.create_boar(org_code, {'ear_tag': 'GB-1', 'breed': 'Duroc'})
    granddam = Sow.create_sow(org_code, {'ear_tag': 'GS-1', 'birth_date': '2018-01-01', 'breed': 'Duroc'})
    dam_sire = Boar.create_boar(org_code, {'ear_tag': 'GB-2', 'breed': 'Landrace'})
    sire = Boar.create_boar(org_code, {'ear_tag': 'B-1', 'name': 'Hamlet', 'breed': 'Duroc',
                                       'registration_number': 'NSR-42', 'sire_id': grandsire, 'dam_id': granddam})
    dam = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01', 'breed': 'Landrace',
                                    'sire_id': dam_sire})
    return {'grandsire': grandsire, 'granddam': granddam, 'dam_sire': dam_sire, 'sire': sire, 'dam': dam}


def test_litter_piglets_inherit_sire_and_dam(org_code, family):
    attempt_id = breeding_service.record_breeding(org_code, family['dam'], {
        'breeding_date': _days_ago(115), 'breeding_time': '07:00', 'boar_id': family['sire']
    }, None)
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id)
    breeding_service.record_litter(org_code, farrowing_id, {
        'actual_farrowing_date': _days_ago(1),
        'live_piglets': 2,
        'piglets': [{'sex': 'male', 'registration_number': 'P-1', 'registration_association': 'NSR'}, {'sex': 'female'}]
    })

    piglets = Piglet.find_by_farrowing(org_code, farrowing_id)
    assert {str(p['sire_id']) for p in piglets} == {family['sire']}
    assert {str(p['dam_id']) for p in piglets} == {family['dam']}
    assert sorted(p['registration_number'] or '' for p in piglets) == ['', 'P-1']


def test_three_generation_pedigree(org_code, family):
    attempt_id = breeding_service.record_breeding(org_code, family['dam'], {
        'breeding_date': _days_ago(115), 'breeding_time': '07:00', 'boar_id': family['sire']
    }, None)
    farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id)
    breeding_service.record_litter(org_code, farrowing_id, {
        'actual_farrowing_date': _days_ago(1), 'live_piglets': 1, 'piglets': [{'sex': 'female'}]
    })
    piglet = Piglet.find_by_farrowing(org_code, farrowing_id)[0]

    pedigree = build_pedigree(org_code, 'piglet', piglet['_id'])
    assert pedigree['animal']['birth_date'] == datetime.strptime(_days_ago(1), '%Y-%m-%d')
    assert pedigree['sire']['name'] == 'Hamlet'
    assert pedigree['sire']['registration_number'] == 'NSR-42'
    assert pedigree['dam']['ear_tag'] == 'S-1'
    assert pedigree['paternal_grandsire']['ear_tag'] == 'GB-1'
    assert pedigree['paternal_granddam']['ear_tag'] == 'GS-1'
    assert pedigree['maternal_grandsire']['ear_tag'] == 'GB-2'
    assert pedigree['maternal_granddam'] is None


def test_pedigree_includes_deleted_parents(org_code, family):
    Sow.delete_sow(org_code, family['granddam'])
    pedigree = build_pedigree(org_code, 'boar', family['sire'])
    assert pedigree['animal']['animal_type'] == 'boar'
    assert pedigree['paternal_grandsire'] is None
    assert pedigree['dam']['ear_tag'] == 'GS-1'
    assert pedigree['sire']['ear_tag'] == 'GB-1'


def test_pedigree_for_missing_animal(org_code):
    with pytest.raises(LookupError, match='Piglet not found'):
        build_pedigree(org_code, 'piglet', '64b000000000000000000000')


def test_pedigree_routes(client, organization, member_factory, login, family):
    base = f"/api/organizations/{organization['_id']}"
    viewer = member_factory(organization, 'readonly')
    login(viewer)

    r = client.get(f"{base}/sows/{family['dam']}/pedigree")
    assert r.status_code == 200
    pedigree = r.get_json()['pedigree']
    assert pedigree['animal']['id'] == family['dam']
    assert pedigree['sire']['ear_tag'] == 'GB-2'
    assert pedigree['dam'] is None

    boar = client.get(f"{base}/boars/{family['sire']}/pedigree").get_json()['pedigree']
    assert boar['dam']['birth_date'] == '2018-01-01'
    assert client.get(f'{base}/piglets/64b000000000000000000000/pedigree').status_code == 404
    assert client.get(f'{base}/piglets/not-an-id/pedigree').status_code == 404

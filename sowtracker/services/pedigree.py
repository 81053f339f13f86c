"""Three-generation pedigrees for sows, boars and piglets

Sires are always boars and dams are always sows. Parents that were
deleted or transferred away still appear; unknown parents are None.
"""
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.piglet import Piglet
from sowtracker.models.farrowing import Farrowing

PEDIGREE_FIELDS = ['ear_tag', 'name', 'breed', 'birth_date', 'registration_number', 'registration_association']

def _summary(animal, animal_type):
    if not animal:
        return None
    entry = {'id': str(animal['_id']), 'animal_type': animal_type}
    for field in PEDIGREE_FIELDS:
        entry[field] = animal.get(field)
    return entry

def _sire(org_code, animal):
    if not animal or not animal.get('sire_id'):
        return None
    return Boar.find_by_id(org_code, animal['sire_id'], include_deleted=True)

def _dam(org_code, animal):
    if not animal or not animal.get('dam_id'):
        return None
    return Sow.find_by_id(org_code, animal['dam_id'], include_deleted=True)

def _load_animal(org_code, animal_type, animal_id):
    if animal_type == 'sow':
        return Sow.find_by_id(org_code, animal_id)
    if animal_type == 'boar':
        return Boar.find_by_id(org_code, animal_id)
    if animal_type == 'piglet':
        piglet = Piglet.find_by_id(org_code, animal_id)
        if piglet and not piglet.get('birth_date') and piglet.get('farrowing_id'):
            farrowing = Farrowing.find_by_id(org_code, piglet['farrowing_id']) or {}
            piglet['birth_date'] = farrowing.get('actual_farrowing_date')
        if piglet and not piglet.get('dam_id'):
            piglet['dam_id'] = piglet.get('sow_id')
        return piglet
    raise ValueError('animal_type must be one of: sow, boar, piglet')

def build_pedigree(org_code, animal_type, animal_id):
    """Resolve an animal, its parents and its grandparents

    Returns:
        dict with animal, sire, dam and the four grandparents
    """
    animal = _load_animal(org_code, animal_type, animal_id)
    if not animal:
        raise LookupError(f'{animal_type.capitalize()} not found')

    sire = _sire(org_code, animal)
    dam = _dam(org_code, animal)
    return {
        'animal': _summary(animal, animal_type),
        'sire': _summary(sire, 'boar'),
        'dam': _summary(dam, 'sow'),
        'paternal_grandsire': _summary(_sire(org_code, sire), 'boar'),
        'paternal_granddam': _summary(_dam(org_code, sire), 'sow'),
        'maternal_grandsire': _summary(_sire(org_code, dam), 'boar'),
        'maternal_granddam': _summary(_dam(org_code, dam), 'sow'),
    }

from datetime import datetime
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.models.sow import generate_auto_tag
from sowtracker.utils.forms import parse_date, parse_float, parse_int, clean_str, require_choice

PIGLET_SEXES = ['male', 'female', 'unknown']
PIGLET_STATUSES = ['nursing', 'weaned', 'sold', 'deceased']

class Piglet:
    @staticmethod
    def _clean_fields(data):
        fields = {}
        for key in ('ear_tag', 'notes', 'cause_of_death', 'registration_number', 'registration_association'):
            if key in data:
                fields[key] = clean_str(data.get(key))
        if 'sex' in data:
            fields['sex'] = require_choice(data.get('sex') or 'unknown', PIGLET_SEXES, 'sex')
        if 'status' in data:
            fields['status'] = require_choice(data.get('status'), PIGLET_STATUSES, 'status')
        for key, label in (('birth_weight', 'Birth weight'), ('weaning_weight', 'Weaning weight'), ('sale_price', 'Sale price')):
            if key in data:
                value = parse_float(data.get(key), label)
                if value is not None and value < 0:
                    raise ValueError(f'{label} cannot be negative')
                fields[key] = value
        for key, label in (('right_ear_notch', 'Right ear notch'), ('left_ear_notch', 'Left ear notch')):
            if key in data:
                fields[key] = parse_int(data.get(key), label)
        for key in ('birth_date', 'weaning_date', 'died_date', 'sold_date'):
            if key in data:
                fields[key] = parse_date(data.get(key), key.replace('_', ' '))
        for key in ('sire_id', 'dam_id'):
            if key in data:
                fields[key] = ObjectId(data[key]) if data.get(key) else None
        return fields

    @staticmethod
    def build_piglet(farrowing, data, status='nursing', sire_id=None):
        """Build a piglet document for a litter without inserting it

        Piglets with no ear tag and no notches get a PIG-YYYYMMDD-NNNN tag.
        The dam defaults to the farrowing sow and the sire to the boar of the
        breeding attempt the farrowing came from.
        """
        fields = Piglet._clean_fields(data)
        ear_tag = fields.get('ear_tag')
        if not ear_tag and fields.get('right_ear_notch') is None and fields.get('left_ear_notch') is None:
            ear_tag = generate_auto_tag('PIG')
        return {
            'farrowing_id': farrowing['_id'],
            'sow_id': farrowing.get('sow_id'),
            'dam_id': fields.get('dam_id') or farrowing.get('sow_id'),
            'sire_id': fields.get('sire_id') or sire_id,
            'registration_number': fields.get('registration_number'),
            'registration_association': fields.get('registration_association'),
            'ear_tag': ear_tag,
            'right_ear_notch': fields.get('right_ear_notch'),
            'left_ear_notch': fields.get('left_ear_notch'),
            'sex': fields.get('sex', 'unknown'),
            'birth_date': fields.get('birth_date') or farrowing.get('actual_farrowing_date'),
            'birth_weight': fields.get('birth_weight'),
            'weaning_weight': fields.get('weaning_weight'),
            'weaning_date': fields.get('weaning_date'),
            'status': status,
            'notes': fields.get('notes'),
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }

    @staticmethod
    def create_piglets(org_code, piglet_docs):
        if not piglet_docs:
            return []
        result = get_org_db(org_code).piglets.insert_many(piglet_docs)
        return [str(i) for i in result.inserted_ids]

    @staticmethod
    def find_by_id(org_code, piglet_id):
        return get_org_db(org_code).piglets.find_one({'_id': ObjectId(piglet_id)})

    @staticmethod
    def find_all(org_code, status=None, sow_id=None):
        query = {}
        if status:
            query['status'] = status
        if sow_id:
            query['sow_id'] = ObjectId(sow_id)
        return list(get_org_db(org_code).piglets.find(query).sort('birth_date', -1))

    @staticmethod
    def find_by_farrowing(org_code, farrowing_id, status=None):
        query = {'farrowing_id': ObjectId(farrowing_id)}
        if status:
            query['status'] = status
        return list(get_org_db(org_code).piglets.find(query).sort('left_ear_notch', 1))

    @staticmethod
    def count_by_farrowing(org_code, farrowing_id):
        return get_org_db(org_code).piglets.count_documents({'farrowing_id': ObjectId(farrowing_id)})

    @staticmethod
    def update_piglet(org_code, piglet_id, data):
        update_data = Piglet._clean_fields(data)
        update_data['updated_at'] = datetime.utcnow()
        result = get_org_db(org_code).piglets.update_one(
            {'_id': ObjectId(piglet_id)},
            {'$set': update_data}
        )
        if result.matched_count == 0:
            raise LookupError('Piglet not found')

    @staticmethod
    def mark_deceased(org_code, piglet_id, died_date=None, cause_of_death=None):
        Piglet.update_piglet(org_code, piglet_id, {
            'status': 'deceased',
            'died_date': died_date or datetime.utcnow(),
            'cause_of_death': cause_of_death
        })

    @staticmethod
    def mark_sold(org_code, piglet_id, sold_date=None, sale_price=None):
        Piglet.update_piglet(org_code, piglet_id, {
            'status': 'sold',
            'sold_date': sold_date or datetime.utcnow(),
            'sale_price': sale_price
        })

    @staticmethod
    def delete_piglet(org_code, piglet_id):
        get_org_db(org_code).piglets.delete_one({'_id': ObjectId(piglet_id)})

from datetime import datetime
from bson import ObjectId
from pymongo import ReturnDocument
from sowtracker import get_org_db
from sowtracker.models.sow import generate_auto_tag
from sowtracker.utils.forms import parse_date, parse_float, parse_int, clean_str

BOAR_TYPES = ['live', 'ai_semen']
BOAR_STATUSES = ['active', 'culled', 'sold', 'transferred']

class Boar:
    @staticmethod
    def _clean_fields(data):
        fields = {}
        for key in ('ear_tag', 'name', 'breed', 'registration_number', 'notes', 'supplier', 'photo_url'):
            if key in data:
                fields[key] = clean_str(data.get(key))
        if 'birth_date' in data:
            fields['birth_date'] = parse_date(data.get('birth_date'), 'birth date')
        if 'collection_date' in data:
            fields['collection_date'] = parse_date(data.get('collection_date'), 'collection date')
        if 'boar_type' in data:
            if data.get('boar_type') not in BOAR_TYPES:
                raise ValueError('boar_type must be one of: live, ai_semen')
            fields['boar_type'] = data['boar_type']
        if 'status' in data:
            if data.get('status') not in BOAR_STATUSES:
                raise ValueError(f'status must be one of: {", ".join(BOAR_STATUSES)}')
            fields['status'] = data['status']
        if 'semen_straws' in data:
            straws = parse_int(data.get('semen_straws'), 'Semen straws')
            if straws is not None and straws < 0:
                raise ValueError('Semen straws cannot be negative')
            fields['semen_straws'] = straws
        if 'cost_per_straw' in data:
            fields['cost_per_straw'] = parse_float(data.get('cost_per_straw'), 'Cost per straw')
        for key in ('sire_id', 'dam_id'):
            if key in data:
                fields[key] = ObjectId(data[key]) if data.get(key) else None
        return fields

    @staticmethod
    def create_boar(org_code, data, created_by='system'):
        """Create a live boar or an AI semen record

        AI semen without an identifier gets one generated as
        AI-YYYYMMDD-NNNN; live boars require an ear tag.
        """
        fields = Boar._clean_fields(data)
        boar_type = fields.get('boar_type', 'live')
        if not fields.get('breed'):
            raise ValueError('Breed is required')

        ear_tag = fields.get('ear_tag')
        if not ear_tag:
            if boar_type != 'ai_semen':
                raise ValueError('Ear tag is required')
            ear_tag = generate_auto_tag('AI')
        if Boar.find_by_ear_tag(org_code, ear_tag):
            raise ValueError(f'Identifier "{ear_tag}" is already in use')

        boar_data = {
            'ear_tag': ear_tag,
            'ear_tag_lower': ear_tag.lower(),
            'name': fields.get('name'),
            'birth_date': fields.get('birth_date') or parse_date(datetime.utcnow()),
            'breed': fields['breed'],
            'boar_type': boar_type,
            'status': 'active',
            'semen_straws': fields.get('semen_straws') if boar_type == 'ai_semen' else None,
            'supplier': fields.get('supplier'),
            'collection_date': fields.get('collection_date'),
            'cost_per_straw': fields.get('cost_per_straw'),
            'registration_number': fields.get('registration_number'),
            'sire_id': fields.get('sire_id'),
            'dam_id': fields.get('dam_id'),
            'notes': fields.get('notes'),
            'photo_url': fields.get('photo_url'),
            'created_by': created_by,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow(),
            'deleted_at': None
        }
        result = get_org_db(org_code).boars.insert_one(boar_data)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, boar_id, include_deleted=False):
        query = {'_id': ObjectId(boar_id)}
        if not include_deleted:
            query['deleted_at'] = None
        return get_org_db(org_code).boars.find_one(query)

    @staticmethod
    def find_by_ear_tag(org_code, ear_tag):
        if not ear_tag:
            return None
        return get_org_db(org_code).boars.find_one({'ear_tag_lower': ear_tag.strip().lower(), 'deleted_at': None})

    @staticmethod
    def find_all(org_code, boar_type=None, status=None):
        query = {'deleted_at': None}
        if boar_type:
            query['boar_type'] = boar_type
        if status:
            query['status'] = status
        return list(get_org_db(org_code).boars.find(query).sort('ear_tag', 1))

    @staticmethod
    def update_boar(org_code, boar_id, data):
        boar = Boar.find_by_id(org_code, boar_id)
        if not boar:
            raise LookupError('Boar not found')
        update_data = Boar._clean_fields(data)
        update_data.pop('boar_type', None)
        if 'ear_tag' in update_data:
            if not update_data['ear_tag']:
                raise ValueError('Ear tag is required')
            existing = Boar.find_by_ear_tag(org_code, update_data['ear_tag'])
            if existing and existing['_id'] != boar['_id']:
                raise ValueError(f'Identifier "{update_data["ear_tag"]}" is already in use')
            update_data['ear_tag_lower'] = update_data['ear_tag'].lower()
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).boars.update_one(
            {'_id': ObjectId(boar_id)},
            {'$set': update_data}
        )

    @staticmethod
    def use_straw(org_code, boar_id):
        """Decrement the straw count of an AI semen record

        Returns:
            The remaining straw count

        Raises:
            ValueError: no straws left
        """
        updated = get_org_db(org_code).boars.find_one_and_update(
            {'_id': ObjectId(boar_id), 'semen_straws': {'$gte': 1}},
            {'$inc': {'semen_straws': -1}, '$set': {'updated_at': datetime.utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if not updated:
            raise ValueError('No semen straws remaining for this AI semen')
        return updated['semen_straws']

    @staticmethod
    def set_status(org_code, boar_id, status):
        if status not in BOAR_STATUSES:
            raise ValueError(f'Invalid boar status: {status}')
        get_org_db(org_code).boars.update_one(
            {'_id': ObjectId(boar_id)},
            {'$set': {'status': status, 'updated_at': datetime.utcnow()}}
        )

    @staticmethod
    def delete_boar(org_code, boar_id):
        """Soft delete a boar, releasing its ear tag for reuse"""
        get_org_db(org_code).boars.update_one(
            {'_id': ObjectId(boar_id)},
            {
                '$set': {'deleted_at': datetime.utcnow(), 'updated_at': datetime.utcnow()},
                '$unset': {'ear_tag_lower': ''}
            }
        )

    @staticmethod
    def describe(boar):
        """Label used in breeding notes: 'Boar: X' or 'AI Semen: X'"""
        label = boar.get('name') or boar.get('ear_tag')
        if boar.get('boar_type') == 'ai_semen':
            return f'AI Semen: {label}'
        return f'Boar: {label}'

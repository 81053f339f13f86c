from datetime import datetime, timedelta
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils.forms import parse_date, parse_float, clean_str, require_choice

ANIMAL_TYPES = ['sow', 'boar', 'piglet']
RECORD_TYPES = ['vet_visit', 'injury', 'procedure', 'observation', 'vaccine', 'treatment']
DUE_SOON_DAYS = 14

class HealthRecord:
    @staticmethod
    def _build_record(animal_type, animal_id, data, recorded_by):
        require_choice(animal_type, ANIMAL_TYPES, 'animal_type')
        record_type = require_choice(data.get('record_type') or 'vet_visit', RECORD_TYPES, 'record_type')
        title = clean_str(data.get('title'))
        if not title:
            raise ValueError('Title is required')
        cost = parse_float(data.get('cost'), 'Cost')
        if cost is not None and cost < 0:
            raise ValueError('Cost cannot be negative')
        return {
            'animal_type': animal_type,
            'animal_id': ObjectId(animal_id),
            'record_type': record_type,
            'record_date': parse_date(data.get('record_date')) or parse_date(datetime.utcnow()),
            'title': title,
            'description': clean_str(data.get('description')),
            'medication_name': clean_str(data.get('medication_name')),
            'dosage': clean_str(data.get('dosage')),
            'cost': cost,
            'administered_by': clean_str(data.get('administered_by')),
            'veterinarian': clean_str(data.get('veterinarian')),
            'next_due_date': parse_date(data.get('next_due_date'), 'next due date'),
            'notes': clean_str(data.get('notes')),
            'recorded_by': recorded_by,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }

    @staticmethod
    def create_record(org_code, animal_type, animal_id, data, recorded_by='system'):
        record = HealthRecord._build_record(animal_type, animal_id, data, recorded_by)
        result = get_org_db(org_code).health_records.insert_one(record)
        record['_id'] = result.inserted_id
        return record

    @staticmethod
    def create_vaccine_records(org_code, animal_type, animal_ids, vaccine_name, vaccine_type=None,
                               dosage=None, batch_number=None, record_date=None, next_due_date=None,
                               administered_by=None, cost=None, notes=None, recorded_by='system'):
        """Record the same vaccine for many animals at once"""
        if not animal_ids:
            raise ValueError('Select at least one animal')
        if not clean_str(vaccine_name):
            raise ValueError('Vaccine name is required')
        description_lines = [
            f'{label}: {value}'
            for label, value in (('Vaccine Type', vaccine_type), ('Dosage', dosage), ('Batch Number', batch_number))
            if clean_str(value)
        ]
        data = {
            'record_type': 'vaccine',
            'title': vaccine_name,
            'description': '\n'.join(description_lines),
            'medication_name': vaccine_name,
            'dosage': dosage,
            'record_date': record_date,
            'next_due_date': next_due_date,
            'administered_by': administered_by,
            'cost': cost,
            'notes': notes
        }
        records = [HealthRecord._build_record(animal_type, animal_id, data, recorded_by) for animal_id in animal_ids]
        result = get_org_db(org_code).health_records.insert_many(records)
        for record, inserted_id in zip(records, result.inserted_ids):
            record['_id'] = inserted_id
        return records

    @staticmethod
    def find_by_id(org_code, record_id):
        return get_org_db(org_code).health_records.find_one({'_id': ObjectId(record_id)})

    @staticmethod
    def find_by_animal(org_code, animal_type, animal_id):
        return list(get_org_db(org_code).health_records.find({
            'animal_type': animal_type,
            'animal_id': ObjectId(animal_id)
        }).sort('record_date', -1))

    @staticmethod
    def find_all(org_code, record_type=None, animal_type=None):
        query = {}
        if record_type:
            query['record_type'] = record_type
        if animal_type:
            query['animal_type'] = animal_type
        return list(get_org_db(org_code).health_records.find(query).sort('record_date', -1))

    @staticmethod
    def find_due_soon(org_code, now=None, days=DUE_SOON_DAYS):
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        return list(get_org_db(org_code).health_records.find({
            'next_due_date': {'$gte': today, '$lte': today + timedelta(days=days)}
        }).sort('next_due_date', 1))

    @staticmethod
    def find_overdue(org_code, now=None):
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        return list(get_org_db(org_code).health_records.find({
            'next_due_date': {'$ne': None, '$lt': today}
        }).sort('next_due_date', 1))

    @staticmethod
    def total_cost_for_animal(org_code, animal_type, animal_id):
        records = HealthRecord.find_by_animal(org_code, animal_type, animal_id)
        return round(sum(r.get('cost') or 0 for r in records), 2)

    @staticmethod
    def update_record(org_code, record_id, data):
        record = HealthRecord.find_by_id(org_code, record_id)
        if not record:
            raise LookupError('Health record not found')
        update_data = {}
        if 'record_type' in data:
            update_data['record_type'] = require_choice(data.get('record_type'), RECORD_TYPES, 'record_type')
        if 'title' in data:
            update_data['title'] = clean_str(data.get('title'))
            if not update_data['title']:
                raise ValueError('Title is required')
        for key in ('description', 'medication_name', 'dosage', 'administered_by', 'veterinarian', 'notes'):
            if key in data:
                update_data[key] = clean_str(data.get(key))
        if 'cost' in data:
            update_data['cost'] = parse_float(data.get('cost'), 'Cost')
        for key in ('record_date', 'next_due_date'):
            if key in data:
                update_data[key] = parse_date(data.get(key), key.replace('_', ' '))
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).health_records.update_one(
            {'_id': ObjectId(record_id)},
            {'$set': update_data}
        )

    @staticmethod
    def delete_record(org_code, record_id):
        get_org_db(org_code).health_records.delete_one({'_id': ObjectId(record_id)})

    @staticmethod
    def copy_to_organization(source_org_code, target_org_code, animal_type, source_animal_id, target_animal_id):
        """Copy an animal's health history into another organization"""
        records = HealthRecord.find_by_animal(source_org_code, animal_type, source_animal_id)
        if not records:
            return 0
        copies = []
        for record in records:
            copy = {k: v for k, v in record.items() if k != '_id'}
            copy['animal_id'] = ObjectId(target_animal_id)
            copy['transferred_from_record_id'] = record['_id']
            copies.append(copy)
        get_org_db(target_org_code).health_records.insert_many(copies)
        return len(copies)

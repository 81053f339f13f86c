from datetime import datetime, timedelta
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils import breeding_dates
from sowtracker.utils.forms import parse_date, parse_int, clean_str

class Farrowing:
    @staticmethod
    def create_farrowing(org_code, sow_id, breeding_date, breeding_attempt_id=None, notes=None):
        """Create an expected farrowing from a breeding date"""
        now = datetime.utcnow()
        farrowing_data = {
            'sow_id': ObjectId(sow_id),
            'breeding_attempt_id': ObjectId(breeding_attempt_id) if breeding_attempt_id else None,
            'breeding_date': breeding_date,
            'expected_farrowing_date': breeding_dates.expected_farrowing_date(breeding_date),
            'actual_farrowing_date': None,
            'live_piglets': None,
            'stillborn': None,
            'mummified': None,
            'moved_to_farrowing_date': None,
            'moved_out_of_farrowing_date': None,
            'notes': notes,
            'created_at': now,
            'updated_at': now
        }
        result = get_org_db(org_code).farrowings.insert_one(farrowing_data)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, farrowing_id):
        return get_org_db(org_code).farrowings.find_one({'_id': ObjectId(farrowing_id)})

    @staticmethod
    def find_by_sow(org_code, sow_id):
        return list(get_org_db(org_code).farrowings.find({'sow_id': ObjectId(sow_id)}).sort('breeding_date', -1))

    @staticmethod
    def find_all(org_code):
        return list(get_org_db(org_code).farrowings.find({}).sort('expected_farrowing_date', -1))

    @staticmethod
    def find_active(org_code):
        """Farrowed litters that have not moved out of farrowing"""
        return list(get_org_db(org_code).farrowings.find({
            'actual_farrowing_date': {'$ne': None},
            'moved_out_of_farrowing_date': None
        }).sort('actual_farrowing_date', -1))

    @staticmethod
    def find_upcoming(org_code, start, end):
        """Expected farrowings (not yet farrowed) between start and end"""
        return list(get_org_db(org_code).farrowings.find({
            'actual_farrowing_date': None,
            'expected_farrowing_date': {'$gte': start, '$lte': end}
        }).sort('expected_farrowing_date', 1))

    @staticmethod
    def find_weaned(org_code):
        return list(get_org_db(org_code).farrowings.find({
            'moved_out_of_farrowing_date': {'$ne': None}
        }).sort('moved_out_of_farrowing_date', -1))

    @staticmethod
    def update_farrowing(org_code, farrowing_id, update_data):
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).farrowings.update_one(
            {'_id': ObjectId(farrowing_id)},
            {'$set': update_data}
        )

    @staticmethod
    def clean_litter_counts(data):
        """Parse live/stillborn/mummified counts as non-negative integers"""
        counts = {}
        for key, label in (('live_piglets', 'Live piglets'), ('stillborn', 'Stillborn'), ('mummified', 'Mummified')):
            value = parse_int(data.get(key), label) or 0
            if value < 0:
                raise ValueError(f'{label} cannot be negative')
            counts[key] = value
        return counts

    @staticmethod
    def edit_farrowing(org_code, farrowing_id, data):
        farrowing = Farrowing.find_by_id(org_code, farrowing_id)
        if not farrowing:
            raise LookupError('Farrowing not found')
        update_data = {}
        if 'breeding_date' in data:
            update_data['breeding_date'] = parse_date(data.get('breeding_date'), 'breeding date', required=True)
            update_data['expected_farrowing_date'] = breeding_dates.expected_farrowing_date(update_data['breeding_date'])
        for key in ('actual_farrowing_date', 'moved_to_farrowing_date', 'moved_out_of_farrowing_date'):
            if key in data:
                update_data[key] = parse_date(data.get(key), key.replace('_', ' '))
        if any(k in data for k in ('live_piglets', 'stillborn', 'mummified')):
            merged = {k: farrowing.get(k) for k in ('live_piglets', 'stillborn', 'mummified')}
            merged.update({k: data[k] for k in ('live_piglets', 'stillborn', 'mummified') if k in data})
            update_data.update(Farrowing.clean_litter_counts(merged))
        if 'notes' in data:
            update_data['notes'] = clean_str(data.get('notes'))
        Farrowing.update_farrowing(org_code, farrowing_id, update_data)

    @staticmethod
    def delete_farrowing(org_code, farrowing_id):
        org_db = get_org_db(org_code)
        org_db.breeding_attempts.update_many(
            {'farrowing_id': ObjectId(farrowing_id)},
            {'$set': {'farrowing_id': None, 'updated_at': datetime.utcnow()}}
        )
        org_db.piglets.update_many(
            {'farrowing_id': ObjectId(farrowing_id)},
            {'$set': {'farrowing_id': None, 'updated_at': datetime.utcnow()}}
        )
        org_db.farrowings.delete_one({'_id': ObjectId(farrowing_id)})

    @staticmethod
    def count_currently_farrowing(org_code, now=None):
        """Distinct sows that farrowed within the weaning age and are still in farrowing"""
        now = now or datetime.utcnow()
        since = datetime(now.year, now.month, now.day) - timedelta(days=breeding_dates.WEANING_AGE_DAYS)
        sow_ids = get_org_db(org_code).farrowings.distinct('sow_id', {
            'actual_farrowing_date': {'$gte': since},
            'moved_out_of_farrowing_date': None
        })
        return len(sow_ids)

from datetime import datetime
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils import breeding_dates
from sowtracker.utils.forms import parse_date, parse_datetime, clean_str, require_choice

BREEDING_METHODS = ['natural', 'ai']
BREEDING_RESULTS = ['pending', 'pregnant', 'returned_to_heat', 'aborted']

def append_note(existing, line):
    """Append a line to free-text notes with a blank line separator"""
    if not line:
        return existing
    return f"{existing}\n\n{line}" if existing else line

def combine_date_and_time(day, time_text):
    """Combine a midnight date with 'HH:MM' into a timestamp"""
    if not time_text:
        return None
    if isinstance(time_text, datetime):
        return time_text
    text = str(time_text).strip()
    if 'T' in text:
        return parse_datetime(text, 'breeding time')
    try:
        parsed = datetime.strptime(text[:5], '%H:%M')
    except ValueError:
        raise ValueError('Invalid time format (use HH:MM)')
    return day.replace(hour=parsed.hour, minute=parsed.minute)

class BreedingAttempt:
    @staticmethod
    def create_attempt(org_code, sow_id, breeding_date, breeding_time, breeding_method,
                       boar_id=None, notes=None, matrix_treatment_id=None, created_by='system', boar_description=None):
        """Insert a breeding attempt document

        Validation of the boar and straws happens in the breeding service;
        this only stores the record.
        """
        require_choice(breeding_method, BREEDING_METHODS, 'breeding_method')
        now = datetime.utcnow()
        is_natural = breeding_method == 'natural'
        attempt_data = {
            'sow_id': ObjectId(sow_id),
            'boar_id': ObjectId(boar_id) if boar_id else None,
            'boar_description': boar_description,
            'breeding_date': breeding_date,
            'breeding_time': breeding_time,
            'breeding_method': breeding_method,
            'result': 'pending',
            'pregnancy_confirmed': None,
            'pregnancy_check_date': None,
            'farrowing_id': None,
            'notes': notes,
            'matrix_treatment_id': ObjectId(matrix_treatment_id) if matrix_treatment_id else None,
            'breeding_cycle_complete': is_natural,
            'breeding_cycle_completed_at': now if is_natural else None,
            'last_dose_date': breeding_date,
            'created_by': created_by,
            'created_at': now,
            'updated_at': now
        }
        result = get_org_db(org_code).breeding_attempts.insert_one(attempt_data)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, attempt_id):
        return get_org_db(org_code).breeding_attempts.find_one({'_id': ObjectId(attempt_id)})

    @staticmethod
    def find_by_sow(org_code, sow_id):
        return list(get_org_db(org_code).breeding_attempts.find({'sow_id': ObjectId(sow_id)}).sort('breeding_date', -1))

    @staticmethod
    def find_latest_for_sow(org_code, sow_id):
        attempts = list(get_org_db(org_code).breeding_attempts.find({'sow_id': ObjectId(sow_id)})
                        .sort([('breeding_date', -1), ('created_at', -1)]).limit(1))
        return attempts[0] if attempts else None

    @staticmethod
    def find_all(org_code, result=None, since=None):
        query = {}
        if result:
            query['result'] = result
        if since:
            query['breeding_date'] = {'$gte': since}
        return list(get_org_db(org_code).breeding_attempts.find(query).sort('breeding_date', -1))

    @staticmethod
    def update_attempt(org_code, attempt_id, update_data):
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).breeding_attempts.update_one(
            {'_id': ObjectId(attempt_id)},
            {'$set': update_data}
        )

    @staticmethod
    def edit_attempt(org_code, attempt_id, data):
        """Edit date, time, method, boar or notes of an attempt"""
        attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
        if not attempt:
            raise LookupError('Breeding attempt not found')
        update_data = {}
        if 'breeding_date' in data:
            breeding_date = parse_date(data.get('breeding_date'), 'breeding date', required=True)
            if breeding_date > datetime.utcnow():
                raise ValueError('Breeding date cannot be in the future')
            update_data['breeding_date'] = breeding_date
        breeding_day = update_data.get('breeding_date', attempt['breeding_date'])
        if 'breeding_time' in data:
            update_data['breeding_time'] = combine_date_and_time(breeding_day, data.get('breeding_time'))
        if 'breeding_method' in data:
            update_data['breeding_method'] = require_choice(data.get('breeding_method'), BREEDING_METHODS, 'breeding_method')
        if 'boar_id' in data:
            update_data['boar_id'] = ObjectId(data['boar_id']) if data.get('boar_id') else None
        if 'notes' in data:
            update_data['notes'] = clean_str(data.get('notes'))
        BreedingAttempt.update_attempt(org_code, attempt_id, update_data)

        if 'breeding_date' in update_data and attempt.get('farrowing_id'):
            get_org_db(org_code).farrowings.update_one(
                {'_id': attempt['farrowing_id'], 'actual_farrowing_date': None},
                {'$set': {
                    'breeding_date': update_data['breeding_date'],
                    'expected_farrowing_date': breeding_dates.expected_farrowing_date(update_data['breeding_date']),
                    'updated_at': datetime.utcnow()
                }}
            )

    @staticmethod
    def complete_breeding_cycle(org_code, attempt_id):
        BreedingAttempt.update_attempt(org_code, attempt_id, {
            'breeding_cycle_complete': True,
            'breeding_cycle_completed_at': datetime.utcnow()
        })

    @staticmethod
    def delete_attempt(org_code, attempt_id):
        org_db = get_org_db(org_code)
        org_db.ai_doses.delete_many({'breeding_attempt_id': ObjectId(attempt_id)})
        org_db.breeding_attempts.delete_one({'_id': ObjectId(attempt_id)})

    @staticmethod
    def get_breeding_status(org_code, sow_id, now=None):
        """Summarize where a sow is in her breeding cycle

        Returns a dict with is_bred, breeding_date, days_since_breeding,
        status_label, pregnancy_confirmed and needs_pregnancy_check.
        """
        attempt = BreedingAttempt.find_latest_for_sow(org_code, sow_id)
        if not attempt or attempt.get('result') == 'returned_to_heat':
            return {
                'is_bred': False,
                'breeding_date': None,
                'days_since_breeding': None,
                'status_label': None,
                'pregnancy_confirmed': False,
                'needs_pregnancy_check': False,
                'breeding_attempt_id': None
            }

        if attempt.get('farrowing_id'):
            farrowing = get_org_db(org_code).farrowings.find_one({'_id': attempt['farrowing_id']})
            if farrowing and farrowing.get('actual_farrowing_date'):
                return {
                    'is_bred': False,
                    'breeding_date': attempt['breeding_date'],
                    'days_since_breeding': breeding_dates.days_since(attempt['breeding_date'], now),
                    'status_label': 'Farrowed',
                    'pregnancy_confirmed': True,
                    'needs_pregnancy_check': False,
                    'breeding_attempt_id': attempt['_id']
                }

        days = breeding_dates.days_since(attempt['breeding_date'], now)
        return {
            'is_bred': True,
            'breeding_date': attempt['breeding_date'],
            'days_since_breeding': days,
            'status_label': breeding_dates.breeding_status_label(days),
            'pregnancy_confirmed': attempt.get('result') == 'pregnant',
            'needs_pregnancy_check': (
                attempt.get('result') == 'pending'
                and days >= breeding_dates.PREGNANCY_CHECK_START_DAY
            ),
            'pregnancy_check_advice': breeding_dates.pregnancy_check_advice(days) if attempt.get('result') == 'pending' else None,
            'breeding_attempt_id': attempt['_id']
        }

class AIDose:
    @staticmethod
    def next_dose_number(org_code, attempt_id):
        """Next dose number; the initial insemination counts as dose 1"""
        latest = list(get_org_db(org_code).ai_doses.find({'breeding_attempt_id': ObjectId(attempt_id)})
                      .sort('dose_number', -1).limit(1))
        return (latest[0]['dose_number'] + 1) if latest else 2

    @staticmethod
    def record_dose(org_code, attempt_id, dose_date, dose_time=None, boar_id=None, notes=None):
        attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
        if not attempt:
            raise LookupError('Breeding attempt not found')
        if attempt.get('breeding_method') != 'ai':
            raise ValueError('Follow-up doses can only be recorded for AI breedings')
        if attempt.get('breeding_cycle_complete'):
            raise ValueError('This breeding cycle is already complete')

        dose_day = parse_date(dose_date, 'dose date', required=True)
        dose_number = AIDose.next_dose_number(org_code, attempt_id)
        dose_data = {
            'breeding_attempt_id': ObjectId(attempt_id),
            'sow_id': attempt['sow_id'],
            'boar_id': ObjectId(boar_id) if boar_id else attempt.get('boar_id'),
            'dose_number': dose_number,
            'dose_date': dose_day,
            'dose_time': combine_date_and_time(dose_day, dose_time),
            'notes': clean_str(notes),
            'created_at': datetime.utcnow()
        }
        result = get_org_db(org_code).ai_doses.insert_one(dose_data)
        BreedingAttempt.update_attempt(org_code, attempt_id, {'last_dose_date': dose_day})
        dose_data['_id'] = result.inserted_id
        return dose_data

    @staticmethod
    def find_by_attempt(org_code, attempt_id):
        return list(get_org_db(org_code).ai_doses.find({'breeding_attempt_id': ObjectId(attempt_id)}).sort('dose_number', 1))

class MatrixTreatment:
    @staticmethod
    def default_batch_name(administration_date):
        return f"Matrix-{administration_date.strftime('%Y-%m-%d')}"

    @staticmethod
    def create_treatments(org_code, sow_ids, administration_date, days_until_heat=None,
                          batch_name=None, dosage=None, lot_number=None, notes=None):
        """Record a Matrix (altrenogest) treatment for each selected sow

        Returns:
            List of inserted ids as strings
        """
        if not sow_ids:
            raise ValueError('Select at least one sow')
        administration_date = parse_date(administration_date, 'administration date', required=True)
        days = int(days_until_heat) if days_until_heat not in (None, '') else breeding_dates.MATRIX_DAYS_TO_HEAT
        if days < 1:
            raise ValueError('days_until_heat must be at least 1')
        batch_name = (batch_name or '').strip() or MatrixTreatment.default_batch_name(administration_date)
        expected_heat_date = breeding_dates.expected_heat_after_matrix(administration_date, days)

        now = datetime.utcnow()
        treatments = [{
            'sow_id': ObjectId(sow_id),
            'batch_name': batch_name,
            'administration_date': administration_date,
            'days_until_heat': days,
            'expected_heat_date': expected_heat_date,
            'dosage': clean_str(dosage),
            'lot_number': clean_str(lot_number),
            'notes': clean_str(notes),
            'bred': False,
            'breeding_date': None,
            'actual_heat_date': None,
            'created_at': now,
            'updated_at': now
        } for sow_id in sow_ids]
        result = get_org_db(org_code).matrix_treatments.insert_many(treatments)
        return [str(i) for i in result.inserted_ids]

    @staticmethod
    def find_by_id(org_code, treatment_id):
        return get_org_db(org_code).matrix_treatments.find_one({'_id': ObjectId(treatment_id)})

    @staticmethod
    def find_all(org_code, bred=None):
        query = {}
        if bred is not None:
            query['bred'] = bred
        return list(get_org_db(org_code).matrix_treatments.find(query).sort('administration_date', -1))

    @staticmethod
    def find_by_sow(org_code, sow_id):
        return list(get_org_db(org_code).matrix_treatments.find({'sow_id': ObjectId(sow_id)}).sort('administration_date', -1))

    @staticmethod
    def list_batches(org_code):
        """Group treatments by batch name with bred counts"""
        pipeline = [
            {'$group': {
                '_id': '$batch_name',
                'administration_date': {'$min': '$administration_date'},
                'expected_heat_date': {'$min': '$expected_heat_date'},
                'sow_count': {'$sum': 1},
                'bred_count': {'$sum': {'$cond': ['$bred', 1, 0]}}
            }},
            {'$sort': {'administration_date': -1}}
        ]
        batches = list(get_org_db(org_code).matrix_treatments.aggregate(pipeline))
        for batch in batches:
            batch['batch_name'] = batch.pop('_id')
        return batches

    @staticmethod
    def mark_bred(org_code, treatment_id, breeding_date, actual_heat_date=None):
        get_org_db(org_code).matrix_treatments.update_one(
            {'_id': ObjectId(treatment_id)},
            {'$set': {
                'bred': True,
                'breeding_date': breeding_date,
                'actual_heat_date': actual_heat_date or breeding_date,
                'updated_at': datetime.utcnow()
            }}
        )

    @staticmethod
    def find_expected_heats(org_code, start, end):
        """Unbred treatments whose expected heat falls in [start, end]"""
        return list(get_org_db(org_code).matrix_treatments.find({
            'bred': False,
            'expected_heat_date': {'$gte': start, '$lte': end}
        }).sort('expected_heat_date', 1))

import random
import re
from datetime import datetime
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
from sowtracker import get_org_db
from sowtracker.utils.forms import parse_date, parse_int, clean_str

SOW_STATUSES = ['active', 'culled', 'sold', 'transferred']
EDITABLE_STATUSES = ['active', 'culled', 'sold']

def generate_auto_tag(prefix):
    """Generate an identifier like AUTO-20240115-0042"""
    date_part = datetime.utcnow().strftime('%Y%m%d')
    return f"{prefix}-{date_part}-{random.randint(0, 9999):04d}"

class Sow:
    @staticmethod
    def _clean_fields(data):
        """Normalize submitted sow fields, raising ValueError on bad input"""
        fields = {}
        if 'ear_tag' in data:
            fields['ear_tag'] = clean_str(data.get('ear_tag'))
        for key in ('name', 'breed', 'registration_number', 'notes', 'photo_url'):
            if key in data:
                fields[key] = clean_str(data.get(key))
        if 'birth_date' in data:
            fields['birth_date'] = parse_date(data.get('birth_date'), 'birth date')
        if 'status' in data:
            status = data.get('status') or 'active'
            if status not in EDITABLE_STATUSES:
                raise ValueError('Status must be: active, culled, or sold')
            fields['status'] = status
        if 'right_ear_notch' in data:
            fields['right_ear_notch'] = parse_int(data.get('right_ear_notch'), 'Right ear notch')
        if 'left_ear_notch' in data:
            fields['left_ear_notch'] = parse_int(data.get('left_ear_notch'), 'Left ear notch')
        for key in ('sire_id', 'dam_id', 'housing_unit_id'):
            if key in data:
                fields[key] = ObjectId(data[key]) if data.get(key) else None
        return fields

    @staticmethod
    def create_sow(org_code, data, created_by='system'):
        """Create a sow record

        Args:
            org_code: Organization slug
            data: Submitted fields (ear_tag and birth_date required)
            created_by: Email or id of the user recording the sow

        Returns:
            The new sow's id as a string
        """
        fields = Sow._clean_fields(data)
        if not fields.get('ear_tag'):
            raise ValueError('Ear tag is required')
        if not fields.get('birth_date'):
            raise ValueError('Birth date is required')
        if Sow.find_by_ear_tag(org_code, fields['ear_tag']):
            raise ValueError(f'Ear tag "{fields["ear_tag"]}" already exists')

        sow_data = {
            'ear_tag': fields['ear_tag'],
            'ear_tag_lower': fields['ear_tag'].lower(),
            'name': fields.get('name'),
            'birth_date': fields['birth_date'],
            'breed': fields.get('breed'),
            'status': fields.get('status', 'active'),
            'right_ear_notch': fields.get('right_ear_notch'),
            'left_ear_notch': fields.get('left_ear_notch'),
            'registration_number': fields.get('registration_number'),
            'notes': fields.get('notes'),
            'photo_url': fields.get('photo_url'),
            'sire_id': fields.get('sire_id'),
            'dam_id': fields.get('dam_id'),
            'housing_unit_id': None,
            'created_by': created_by,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow(),
            'deleted_at': None,
            'audit_log': []
        }
        result = get_org_db(org_code).sows.insert_one(sow_data)
        sow_id = str(result.inserted_id)

        Sow.add_audit_log_entry(org_code, sow_id, 'created', f'Sow record created (ear tag: {fields["ear_tag"]})', created_by)
        return sow_id

    @staticmethod
    def find_by_id(org_code, sow_id, include_deleted=False):
        query = {'_id': ObjectId(sow_id)}
        if not include_deleted:
            query['deleted_at'] = None
        return get_org_db(org_code).sows.find_one(query)

    @staticmethod
    def find_by_ids(org_code, sow_ids):
        if not sow_ids:
            return []
        return list(get_org_db(org_code).sows.find({
            '_id': {'$in': [ObjectId(s) for s in sow_ids]},
            'deleted_at': None
        }))

    @staticmethod
    def find_by_ear_tag(org_code, ear_tag):
        """Find a sow by ear tag (case-insensitive)"""
        if not ear_tag:
            return None
        return get_org_db(org_code).sows.find_one({'ear_tag_lower': ear_tag.strip().lower(), 'deleted_at': None})

    @staticmethod
    def find_all(org_code, status=None, search=None, housing_unit_id=None):
        """List sows with optional status, search and housing filters"""
        query = {'deleted_at': None}
        if status:
            query['status'] = status
        if housing_unit_id:
            query['housing_unit_id'] = ObjectId(housing_unit_id)
        if search:
            pattern = re.escape(search)
            query['$or'] = [
                {'ear_tag': {'$regex': pattern, '$options': 'i'}},
                {'name': {'$regex': pattern, '$options': 'i'}},
                {'breed': {'$regex': pattern, '$options': 'i'}}
            ]
        return list(get_org_db(org_code).sows.find(query).sort('ear_tag', 1))

    @staticmethod
    def update_sow(org_code, sow_id, data, updated_by='system'):
        """Update sow fields, recording an audit entry for the changes"""
        sow = Sow.find_by_id(org_code, sow_id)
        if not sow:
            raise LookupError('Sow not found')

        update_data = Sow._clean_fields(data)
        update_data.pop('housing_unit_id', None)
        if 'ear_tag' in update_data:
            if not update_data['ear_tag']:
                raise ValueError('Ear tag is required')
            existing = Sow.find_by_ear_tag(org_code, update_data['ear_tag'])
            if existing and existing['_id'] != sow['_id']:
                raise ValueError(f'Ear tag "{update_data["ear_tag"]}" already exists')
            update_data['ear_tag_lower'] = update_data['ear_tag'].lower()

        changes = []
        old_values = {}
        new_values = {}
        for field, new_value in update_data.items():
            if field == 'ear_tag_lower':
                continue
            old_value = sow.get(field)
            if old_value != new_value:
                old_values[field] = old_value
                new_values[field] = new_value
                if isinstance(old_value, datetime) or isinstance(new_value, datetime):
                    old_str = old_value.strftime('%Y-%m-%d') if old_value else 'none'
                    new_str = new_value.strftime('%Y-%m-%d') if new_value else 'none'
                    changes.append(f"{field}: {old_str} → {new_str}")
                else:
                    changes.append(f"{field}: {old_value or 'none'} → {new_value or 'none'}")

        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).sows.update_one(
            {'_id': ObjectId(sow_id)},
            {'$set': update_data}
        )

        if changes:
            Sow.add_audit_log_entry(
                org_code,
                sow_id,
                'information_updated',
                f'Sow information updated: {", ".join(changes)}',
                updated_by,
                {'old_values': old_values, 'new_values': new_values}
            )

    @staticmethod
    def set_status(org_code, sow_id, status, updated_by='system'):
        if status not in SOW_STATUSES:
            raise ValueError(f'Invalid sow status: {status}')
        get_org_db(org_code).sows.update_one(
            {'_id': ObjectId(sow_id)},
            {'$set': {'status': status, 'updated_at': datetime.utcnow()}}
        )
        Sow.add_audit_log_entry(org_code, sow_id, 'status_changed', f'Status set to {status}', updated_by, {'status': status})

    @staticmethod
    def set_housing_unit(org_code, sow_id, housing_unit_id):
        get_org_db(org_code).sows.update_one(
            {'_id': ObjectId(sow_id)},
            {'$set': {
                'housing_unit_id': ObjectId(housing_unit_id) if housing_unit_id else None,
                'updated_at': datetime.utcnow()
            }}
        )

    @staticmethod
    def delete_sow(org_code, sow_id, deleted_by='system'):
        """Soft delete a sow, releasing its ear tag for reuse"""
        get_org_db(org_code).sows.update_one(
            {'_id': ObjectId(sow_id)},
            {
                '$set': {'deleted_at': datetime.utcnow(), 'updated_at': datetime.utcnow()},
                '$unset': {'ear_tag_lower': ''}
            }
        )
        Sow.add_audit_log_entry(org_code, sow_id, 'deleted', 'Sow record deleted', deleted_by)

    @staticmethod
    def add_audit_log_entry(org_code, sow_id, activity_type, description, performed_by='system', details=None):
        """Add an entry to the sow audit log"""
        audit_entry = {
            'activity_type': activity_type,
            'description': description,
            'performed_by': performed_by,
            'timestamp': datetime.utcnow(),
            'details': details or {}
        }
        get_org_db(org_code).sows.update_one(
            {'_id': ObjectId(sow_id)},
            {'$push': {'audit_log': audit_entry}}
        )

    @staticmethod
    def get_audit_log(org_code, sow_id):
        sow = Sow.find_by_id(org_code, sow_id, include_deleted=True)
        if not sow:
            return []
        return sow.get('audit_log', [])

    @staticmethod
    def validate_import_rows(org_code, rows):
        """Validate rows parsed from an import file

        Returns:
            List of {'row', 'data', 'valid', 'errors'} in file order. Row
            numbers are 1-based data rows (the header is not counted).
        """
        existing_tags = {
            s['ear_tag_lower']
            for s in get_org_db(org_code).sows.find({'deleted_at': None, 'ear_tag_lower': {'$exists': True}}, {'ear_tag_lower': 1})
        }
        seen_tags = {}
        results = []

        for index, row in enumerate(rows, start=1):
            errors = []
            birth_date = (row.get('birth_date') or '').strip()
            if not birth_date:
                errors.append('Birth date is required')
            else:
                try:
                    datetime.strptime(birth_date, '%Y-%m-%d')
                except ValueError:
                    errors.append('Invalid birth date format (use YYYY-MM-DD)')

            if not (row.get('breed') or '').strip():
                errors.append('Breed is required')

            status = (row.get('status') or '').strip()
            if status and status not in EDITABLE_STATUSES:
                errors.append('Status must be: active, culled, or sold')

            ear_tag = (row.get('ear_tag') or '').strip()
            if ear_tag:
                tag_key = ear_tag.lower()
                if tag_key in existing_tags:
                    errors.append(f'Ear tag "{ear_tag}" already exists in database')
                if tag_key in seen_tags:
                    errors.append(f'Duplicate ear tag in file (row {seen_tags[tag_key]})')
                else:
                    seen_tags[tag_key] = index

            for key, label in (('right_ear_notch', 'Right ear notch'), ('left_ear_notch', 'Left ear notch')):
                value = (str(row.get(key)) if row.get(key) is not None else '').strip()
                if value:
                    try:
                        float(value)
                    except ValueError:
                        errors.append(f'{label} must be a number')

            results.append({'row': index, 'data': row, 'valid': not errors, 'errors': errors})
        return results

    @staticmethod
    def import_sows(org_code, rows, created_by='system', dry_run=False):
        """Validate and insert imported sows

        Valid rows are inserted one at a time; a duplicate ear tag that
        appears between validation and insert is counted as skipped.
        """
        validation = Sow.validate_import_rows(org_code, rows)
        valid_rows = [v for v in validation if v['valid']]
        result = {
            'total': len(valid_rows),
            'invalid': len(validation) - len(valid_rows),
            'success': 0,
            'failed': 0,
            'skipped': 0,
            'validation': validation,
            'details': []
        }
        if dry_run:
            return result

        org_db = get_org_db(org_code)
        for valid_row in valid_rows:
            row = valid_row['data']
            ear_tag = (row.get('ear_tag') or '').strip() or generate_auto_tag('AUTO')
            try:
                sow_data = {
                    'ear_tag': ear_tag,
                    'ear_tag_lower': ear_tag.lower(),
                    'name': clean_str(row.get('name')),
                    'birth_date': parse_date(row.get('birth_date'), 'birth date', required=True),
                    'breed': clean_str(row.get('breed')),
                    'status': clean_str(row.get('status')) or 'active',
                    'right_ear_notch': parse_int(row.get('right_ear_notch'), 'Right ear notch'),
                    'left_ear_notch': parse_int(row.get('left_ear_notch'), 'Left ear notch'),
                    'registration_number': clean_str(row.get('registration_number')),
                    'notes': clean_str(row.get('notes')),
                    'photo_url': None,
                    'sire_id': None,
                    'dam_id': None,
                    'housing_unit_id': None,
                    'created_by': created_by,
                    'created_at': datetime.utcnow(),
                    'updated_at': datetime.utcnow(),
                    'deleted_at': None,
                    'audit_log': [{
                        'activity_type': 'imported',
                        'description': f'Sow imported (ear tag: {ear_tag})',
                        'performed_by': created_by,
                        'timestamp': datetime.utcnow(),
                        'details': {'row': valid_row['row']}
                    }]
                }
                org_db.sows.insert_one(sow_data)
                result['success'] += 1
                result['details'].append({'row': valid_row['row'], 'ear_tag': ear_tag, 'status': 'success'})
            except DuplicateKeyError:
                result['skipped'] += 1
                result['details'].append({
                    'row': valid_row['row'],
                    'ear_tag': ear_tag,
                    'status': 'skipped',
                    'message': 'Duplicate ear tag (already exists)'
                })
            except ValueError as e:
                result['failed'] += 1
                result['details'].append({'row': valid_row['row'], 'ear_tag': ear_tag, 'status': 'failed', 'message': str(e)})
        return result

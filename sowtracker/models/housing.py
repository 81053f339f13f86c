import math
from datetime import datetime
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils.forms import parse_date, parse_float, parse_int, clean_str, require_choice

HOUSING_TYPES = ['gestation', 'farrowing', 'breeding', 'hospital', 'quarantine', 'other']
SQ_FT_PER_SOW = 24
MAX_BULK_UNITS = 2000

class HousingUnit:
    @staticmethod
    def _clean_fields(data):
        fields = {}
        for key in ('name', 'unit_number', 'building_name', 'pen_number', 'notes', 'measured_by', 'measurement_notes'):
            if key in data:
                fields[key] = clean_str(data.get(key))
        if 'type' in data:
            fields['type'] = require_choice(data.get('type') or 'other', HOUSING_TYPES, 'type')
        for key, label in (('length_feet', 'Length'), ('width_feet', 'Width'), ('square_footage', 'Square footage')):
            if key in data:
                value = parse_float(data.get(key), label)
                if value is not None and value <= 0:
                    raise ValueError(f'{label} must be greater than 0')
                fields[key] = value
        if 'max_capacity' in data:
            capacity = parse_int(data.get('max_capacity'), 'Max capacity')
            if capacity is not None and capacity < 0:
                raise ValueError('Max capacity cannot be negative')
            fields['max_capacity'] = capacity
        if 'measurement_date' in data:
            fields['measurement_date'] = parse_date(data.get('measurement_date'), 'measurement date')
        return fields

    @staticmethod
    def _apply_measurements(fields, prop12_enabled):
        """Fill square footage from length x width and Prop 12 capacity"""
        if not fields.get('square_footage') and fields.get('length_feet') and fields.get('width_feet'):
            fields['square_footage'] = round(fields['length_feet'] * fields['width_feet'], 2)
        if prop12_enabled and fields.get('type') == 'gestation':
            if not fields.get('square_footage'):
                raise ValueError('Square footage is required for gestation units when Prop 12 compliance is enabled')
            fields['max_capacity'] = math.floor(fields['square_footage'] / SQ_FT_PER_SOW)
        return fields

    @staticmethod
    def create_unit(org_code, data, prop12_enabled=False):
        fields = HousingUnit._clean_fields(data)
        if not fields.get('name'):
            raise ValueError('Name is required')
        fields.setdefault('type', 'other')
        HousingUnit._apply_measurements(fields, prop12_enabled)

        unit_data = {
            'name': fields['name'],
            'unit_number': fields.get('unit_number'),
            'type': fields['type'],
            'building_name': fields.get('building_name'),
            'pen_number': fields.get('pen_number'),
            'length_feet': fields.get('length_feet'),
            'width_feet': fields.get('width_feet'),
            'square_footage': fields.get('square_footage'),
            'max_capacity': fields.get('max_capacity'),
            'measurement_date': fields.get('measurement_date'),
            'measured_by': fields.get('measured_by'),
            'measurement_notes': fields.get('measurement_notes'),
            'notes': fields.get('notes'),
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).housing_units.insert_one(unit_data)
        return str(result.inserted_id)

    @staticmethod
    def bulk_create_units(org_code, building_base_name, building_start, building_end, pen_start, pen_end,
                          unit_type='other', square_footage=None, capacity_per_unit=None, prop12_enabled=False):
        """Create one unit per building/pen combination

        A single building keeps the base name; a range appends the building
        number. Units are named '<building> - Pen <n>'.
        """
        base_name = (building_base_name or '').strip()
        if not base_name:
            raise ValueError('Building name is required')
        building_start, building_end = int(building_start), int(building_end)
        pen_start, pen_end = int(pen_start), int(pen_end)
        if building_start > building_end:
            raise ValueError('Building start number must be less than or equal to end number')
        if pen_start > pen_end:
            raise ValueError('Pen start number must be less than or equal to end number')
        total = (building_end - building_start + 1) * (pen_end - pen_start + 1)
        if total > MAX_BULK_UNITS:
            raise ValueError(f'Cannot create more than {MAX_BULK_UNITS} units at once')

        fields = HousingUnit._apply_measurements({
            'type': require_choice(unit_type or 'other', HOUSING_TYPES, 'type'),
            'square_footage': parse_float(square_footage, 'Square footage'),
            'max_capacity': parse_int(capacity_per_unit, 'Capacity per unit')
        }, prop12_enabled)

        now = datetime.utcnow()
        units = []
        for building in range(building_start, building_end + 1):
            building_name = base_name if building_start == building_end else f'{base_name} {building}'
            for pen in range(pen_start, pen_end + 1):
                units.append({
                    'name': f'{building_name} - Pen {pen}',
                    'unit_number': None,
                    'type': fields['type'],
                    'building_name': building_name,
                    'pen_number': str(pen),
                    'length_feet': None,
                    'width_feet': None,
                    'square_footage': fields.get('square_footage'),
                    'max_capacity': fields.get('max_capacity'),
                    'measurement_date': None,
                    'measured_by': None,
                    'measurement_notes': None,
                    'notes': 'Bulk created',
                    'created_at': now,
                    'updated_at': now
                })
        result = get_org_db(org_code).housing_units.insert_many(units)
        return len(result.inserted_ids)

    @staticmethod
    def find_by_id(org_code, unit_id):
        return get_org_db(org_code).housing_units.find_one({'_id': ObjectId(unit_id)})

    @staticmethod
    def find_all(org_code, unit_type=None):
        query = {}
        if unit_type:
            query['type'] = unit_type
        return list(get_org_db(org_code).housing_units.find(query).sort('name', 1))

    @staticmethod
    def display_name(unit):
        if unit.get('building_name') and unit.get('pen_number'):
            return f"{unit['building_name']} - Pen {unit['pen_number']}"
        return unit.get('name')

    @staticmethod
    def current_occupancy(org_code, unit_id):
        return get_org_db(org_code).sows.count_documents({
            'housing_unit_id': ObjectId(unit_id),
            'deleted_at': None,
            'status': 'active'
        })

    @staticmethod
    def find_with_occupancy(org_code, unit_type=None):
        """Units with current_sows and display_name"""
        units = HousingUnit.find_all(org_code, unit_type)
        pipeline = [
            {'$match': {'deleted_at': None, 'status': 'active', 'housing_unit_id': {'$ne': None}}},
            {'$group': {'_id': '$housing_unit_id', 'count': {'$sum': 1}}}
        ]
        counts = {row['_id']: row['count'] for row in get_org_db(org_code).sows.aggregate(pipeline)}
        for unit in units:
            unit['current_sows'] = counts.get(unit['_id'], 0)
            unit['display_name'] = HousingUnit.display_name(unit)
        return units

    @staticmethod
    def update_unit(org_code, unit_id, data, prop12_enabled=False):
        unit = HousingUnit.find_by_id(org_code, unit_id)
        if not unit:
            raise LookupError('Housing unit not found')
        update_data = HousingUnit._clean_fields(data)
        if 'name' in update_data and not update_data['name']:
            raise ValueError('Name is required')
        merged = {k: unit.get(k) for k in ('type', 'length_feet', 'width_feet', 'square_footage', 'max_capacity')}
        merged.update(update_data)
        if ('length_feet' in update_data or 'width_feet' in update_data) and 'square_footage' not in update_data:
            merged['square_footage'] = None
        HousingUnit._apply_measurements(merged, prop12_enabled)
        for key in ('square_footage', 'max_capacity'):
            update_data[key] = merged.get(key)
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).housing_units.update_one(
            {'_id': ObjectId(unit_id)},
            {'$set': update_data}
        )

    @staticmethod
    def delete_unit(org_code, unit_id):
        """Delete an empty housing unit"""
        if HousingUnit.current_occupancy(org_code, unit_id) > 0:
            raise ValueError('Move all sows out of this housing unit before deleting it')
        get_org_db(org_code).housing_units.delete_one({'_id': ObjectId(unit_id)})

class LocationHistory:
    @staticmethod
    def find_open(org_code, sow_id):
        return get_org_db(org_code).location_history.find_one({
            'sow_id': ObjectId(sow_id),
            'moved_out_date': None
        })

    @staticmethod
    def close_open(org_code, sow_id, moved_out_date):
        get_org_db(org_code).location_history.update_many(
            {'sow_id': ObjectId(sow_id), 'moved_out_date': None},
            {'$set': {'moved_out_date': moved_out_date}}
        )

    @staticmethod
    def open_entry(org_code, sow_id, housing_unit_id, moved_in_date, reason=None, notes=None):
        entry = {
            'sow_id': ObjectId(sow_id),
            'housing_unit_id': ObjectId(housing_unit_id),
            'moved_in_date': moved_in_date,
            'moved_out_date': None,
            'reason': reason,
            'notes': notes,
            'created_at': datetime.utcnow()
        }
        result = get_org_db(org_code).location_history.insert_one(entry)
        return str(result.inserted_id)

    @staticmethod
    def find_by_sow(org_code, sow_id):
        return list(get_org_db(org_code).location_history.find({'sow_id': ObjectId(sow_id)}).sort('moved_in_date', -1))

    @staticmethod
    def find_by_unit(org_code, unit_id):
        return list(get_org_db(org_code).location_history.find({'housing_unit_id': ObjectId(unit_id)}).sort('moved_in_date', -1))

    @staticmethod
    def find_overlapping(org_code, since):
        """Entries still open or closed after `since`"""
        return list(get_org_db(org_code).location_history.find({
            '$or': [{'moved_out_date': None}, {'moved_out_date': {'$gt': since}}]
        }))

"""Moving sows between housing units"""
import logging
from datetime import datetime
from bson import ObjectId
from sowtracker.models.sow import Sow
from sowtracker.models.housing import HousingUnit, LocationHistory
from sowtracker.utils.forms import clean_str, parse_datetime

logger = logging.getLogger(__name__)

def assign_housing(org_code, sow_id, housing_unit_id, reason=None, notes=None, moved_at=None, performed_by='system'):
    """Move a sow into a unit, or out of housing when housing_unit_id is None

    Closes the open location-history row and opens a new one.

    Raises:
        LookupError: sow or unit not found
        ValueError: unit is at max capacity
    """
    sow = Sow.find_by_id(org_code, sow_id)
    if not sow:
        raise LookupError('Sow not found')
    moved_at = parse_datetime(moved_at, 'move time') or datetime.utcnow()

    unit = None
    if housing_unit_id:
        unit = HousingUnit.find_by_id(org_code, housing_unit_id)
        if not unit:
            raise LookupError('Housing unit not found')
        if sow.get('housing_unit_id') == unit['_id']:
            raise ValueError('Sow is already in this housing unit')
        capacity = unit.get('max_capacity')
        if capacity is not None and HousingUnit.current_occupancy(org_code, unit['_id']) >= capacity:
            raise ValueError(f"{HousingUnit.display_name(unit)} is at maximum capacity ({capacity} sows)")

    LocationHistory.close_open(org_code, sow_id, moved_at)
    if unit:
        LocationHistory.open_entry(org_code, sow_id, unit['_id'], moved_at, clean_str(reason), clean_str(notes))
    Sow.set_housing_unit(org_code, sow_id, unit['_id'] if unit else None)

    description = f"Moved to {HousingUnit.display_name(unit)}" if unit else 'Removed from housing'
    Sow.add_audit_log_entry(org_code, sow_id, 'housing_changed', description, performed_by,
                            {'housing_unit_id': str(unit['_id']) if unit else None, 'reason': clean_str(reason)})
    logger.info(f"{org_code}: sow {sow.get('ear_tag')} {description.lower()}")

def bulk_assign_housing(org_code, sow_ids, housing_unit_id, reason=None, notes=None, performed_by='system'):
    """Assign several sows; each failure is reported, not raised

    Returns:
        dict with assigned (ids) and errors (per sow messages)
    """
    if not sow_ids:
        raise ValueError('Select at least one sow')
    assigned = []
    errors = []
    for sow_id in sow_ids:
        try:
            assign_housing(org_code, sow_id, housing_unit_id, reason, notes, performed_by=performed_by)
            assigned.append(str(sow_id))
        except (ValueError, LookupError) as e:
            errors.append({'sow_id': str(sow_id), 'message': str(e)})
    return {'assigned': assigned, 'errors': errors}

def location_history_for_sow(org_code, sow_id):
    """History rows (newest first) with the unit's display name"""
    entries = LocationHistory.find_by_sow(org_code, sow_id)
    unit_ids = list({e['housing_unit_id'] for e in entries if e.get('housing_unit_id')})
    units = {}
    for unit in HousingUnit.find_all(org_code):
        if unit['_id'] in unit_ids:
            units[unit['_id']] = unit
    for entry in entries:
        unit = units.get(entry.get('housing_unit_id'))
        entry['housing_unit_name'] = HousingUnit.display_name(unit) if unit else 'Deleted unit'
    return entries

def location_history_for_unit(org_code, unit_id):
    """History rows for a unit with each sow's ear tag"""
    entries = LocationHistory.find_by_unit(org_code, unit_id)
    sows = {s['_id']: s for s in Sow.find_by_ids(org_code, [e['sow_id'] for e in entries])}
    for entry in entries:
        sow = sows.get(entry['sow_id']) or {}
        entry['sow_ear_tag'] = sow.get('ear_tag')
        entry['sow_name'] = sow.get('name')
    return entries

def sows_in_unit(org_code, unit_id):
    return Sow.find_all(org_code, status='active', housing_unit_id=ObjectId(unit_id))

"""Prop 12 confinement calculations

A location-history interval counts as confinement when its housing unit
gives a sow less than 24 sq ft (square footage divided by capacity).
Farrowing and hospital units are exempt.
"""
import logging
from datetime import datetime, timedelta
from sowtracker import get_org_db
from sowtracker.models.housing import HousingUnit, LocationHistory, SQ_FT_PER_SOW
from sowtracker.models.organization import OrganizationMember
from sowtracker.services import notification_service
from sowtracker.utils.csv_export import format_date_for_csv

logger = logging.getLogger(__name__)

MAX_HOURS_24H = 6
MAX_HOURS_30D = 24
AT_RISK_HOURS_24H = 4
AT_RISK_HOURS_30D = 20
EXEMPT_UNIT_TYPES = ['farrowing', 'hospital']

def space_per_sow(unit):
    """Square feet available to each sow in a unit, None when unmeasured"""
    if not unit or not unit.get('square_footage'):
        return None
    return unit['square_footage'] / max(unit.get('max_capacity') or 0, 1)

def is_confinement_unit(unit):
    if not unit or unit.get('type') in EXEMPT_UNIT_TYPES:
        return False
    space = space_per_sow(unit)
    return space is not None and space < SQ_FT_PER_SOW

def overlap_hours(moved_in, moved_out, window_start, now):
    """Hours an interval overlaps [window_start, now]; open intervals end now"""
    start = max(moved_in, window_start)
    end = min(moved_out or now, now)
    if end <= start:
        return 0.0
    return (end - start).total_seconds() / 3600

def confinement_hours(entries, units, now):
    """Confinement hours in the last 24 hours and 30 days for one sow's history"""
    day_start = now - timedelta(hours=24)
    month_start = now - timedelta(days=30)
    hours_24h = 0.0
    hours_30d = 0.0
    for entry in entries:
        if not is_confinement_unit(units.get(entry.get('housing_unit_id'))):
            continue
        hours_24h += overlap_hours(entry['moved_in_date'], entry.get('moved_out_date'), day_start, now)
        hours_30d += overlap_hours(entry['moved_in_date'], entry.get('moved_out_date'), month_start, now)
    return round(hours_24h, 2), round(hours_30d, 2)

def evaluate_sow(sow, entries, units, now):
    """Compliance row for a sow"""
    unit = units.get(sow.get('housing_unit_id'))
    hours_24h, hours_30d = confinement_hours(entries, units, now)
    floor_space = space_per_sow(unit)
    if floor_space is not None:
        floor_space = round(floor_space, 1)
    is_compliant = hours_24h <= MAX_HOURS_24H and hours_30d <= MAX_HOURS_30D
    return {
        'sow_id': sow['_id'],
        'sow_ear_tag': sow.get('ear_tag'),
        'sow_name': sow.get('name'),
        'current_housing': HousingUnit.display_name(unit) if unit else None,
        'housing_type': unit.get('type') if unit else None,
        'floor_space': floor_space,
        'confinement_hours_24h': hours_24h,
        'confinement_hours_30d': hours_30d,
        'is_compliant': is_compliant,
        'at_risk': (
            hours_24h > AT_RISK_HOURS_24H
            or hours_30d > AT_RISK_HOURS_30D
            or not floor_space
        )
    }

def _load(org_code, now):
    org_db = get_org_db(org_code)
    units = {u['_id']: u for u in org_db.housing_units.find({})}
    history = {}
    for entry in LocationHistory.find_overlapping(org_code, now - timedelta(days=30)):
        history.setdefault(entry['sow_id'], []).append(entry)
    return units, history

def sow_compliance(org_code, sow, now=None):
    now = now or datetime.utcnow()
    units, history = _load(org_code, now)
    return evaluate_sow(sow, history.get(sow['_id'], []), units, now)

def compliance_report(org_code, now=None):
    """Per-sow compliance rows for active sows plus totals"""
    now = now or datetime.utcnow()
    units, history = _load(org_code, now)
    sows = get_org_db(org_code).sows.find({'deleted_at': None, 'status': 'active'}).sort('ear_tag', 1)
    rows = [evaluate_sow(sow, history.get(sow['_id'], []), units, now) for sow in sows]
    total = len(rows)
    compliant = sum(1 for r in rows if r['is_compliant'])
    return {
        'generated_at': now,
        'limits': {
            'sq_ft_per_sow': SQ_FT_PER_SOW,
            'max_hours_24h': MAX_HOURS_24H,
            'max_hours_30d': MAX_HOURS_30D
        },
        'summary': {
            'total': total,
            'compliant': compliant,
            'non_compliant': total - compliant,
            'at_risk': sum(1 for r in rows if r['at_risk']),
            'compliance_rate': round(compliant / total * 100, 1) if total else 0
        },
        'sows': rows
    }

def report_csv_rows(report):
    return [{
        'Ear Tag': row['sow_ear_tag'],
        'Name': row['sow_name'] or '',
        'Compliant': 'Yes' if row['is_compliant'] else 'No',
        'At Risk': 'Yes' if row['at_risk'] else 'No',
        '24h Confinement Hours': f"{row['confinement_hours_24h']:.1f}",
        '30d Confinement Hours': f"{row['confinement_hours_30d']:.1f}",
        'Current Housing': row['current_housing'] or '',
        'Floor Space (sq ft)': row['floor_space'] if row['floor_space'] is not None else '',
        'Report Date': format_date_for_csv(report['generated_at'])
    } for row in report['sows']]

def send_compliance_alerts(organization, report):
    """Alert the organization's owners about each non-compliant sow

    Returns:
        Number of notifications created
    """
    owners = OrganizationMember.find_owners(organization['_id'])
    sent = 0
    for row in report['sows']:
        if row['is_compliant']:
            continue
        message = (
            f"Sow {row['sow_ear_tag']} has {row['confinement_hours_24h']:.1f}h confinement in the last 24 hours "
            f"(limit {MAX_HOURS_24H}h) and {row['confinement_hours_30d']:.1f}h in the last 30 days "
            f"(limit {MAX_HOURS_30D}h)"
        )
        for owner in owners:
            if notification_service.send_compliance_alert(row['sow_id'], row['sow_ear_tag'], message, owner['user_id']):
                sent += 1
    logger.info(f"Sent {sent} compliance alerts for {organization.get('slug')}")
    return sent

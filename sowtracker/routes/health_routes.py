from flask import Blueprint, request, jsonify, g
import logging
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.piglet import Piglet
from sowtracker.models.health import HealthRecord, ANIMAL_TYPES
from sowtracker.services import notification_service
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_float
from sowtracker.utils.csv_export import csv_response, format_date_for_csv
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/api/organizations/<organization_id>')

ANIMAL_LOOKUPS = {
    'sow': lambda org_code, animal_id: Sow.find_by_id(org_code, animal_id),
    'boar': lambda org_code, animal_id: Boar.find_by_id(org_code, animal_id),
    'piglet': lambda org_code, animal_id: Piglet.find_by_id(org_code, animal_id),
}

def _animal_labels(org_code):
    """Map (animal_type, id) to an ear tag for list views and exports"""
    labels = {}
    for sow in Sow.find_all(org_code):
        labels[('sow', sow['_id'])] = sow.get('ear_tag')
    for boar in Boar.find_all(org_code):
        labels[('boar', boar['_id'])] = boar.get('ear_tag') or boar.get('name')
    for piglet in Piglet.find_all(org_code):
        labels[('piglet', piglet['_id'])] = piglet.get('ear_tag')
    return labels

def _after_create(record, animal_label):
    user_id = str(g.user['_id'])
    notification_service.send_health_record_notification(record['_id'], animal_label, record['record_type'], user_id)
    if record['record_type'] == 'vaccine' and record.get('next_due_date'):
        notification_service.schedule_vaccination_reminders(
            record['_id'], animal_label, record['title'], record['next_due_date'], user_id
        )

@health_bp.route('/health-records', methods=['GET'])
@organization_access_required('view')
def list_health_records(organization_id):
    records = HealthRecord.find_all(
        g.org_code, record_type=request.args.get('record_type'), animal_type=request.args.get('animal_type')
    )
    labels = _animal_labels(g.org_code)
    for record in records:
        record['animal_ear_tag'] = labels.get((record['animal_type'], record['animal_id']))
    return jsonify({'success': True, 'health_records': serialize(records)})

@health_bp.route('/health-records/due', methods=['GET'])
@organization_access_required('view')
def due_health_records(organization_id):
    """Upcoming (next 14 days) and overdue follow-ups"""
    labels = _animal_labels(g.org_code)
    due_soon = HealthRecord.find_due_soon(g.org_code)
    overdue = HealthRecord.find_overdue(g.org_code)
    for record in due_soon + overdue:
        record['animal_ear_tag'] = labels.get((record['animal_type'], record['animal_id']))
    return jsonify({'success': True, 'due_soon': serialize(due_soon), 'overdue': serialize(overdue)})

@health_bp.route('/<any(sows, boars, piglets):animal_collection>/<animal_id>/health-records', methods=['POST'])
@organization_access_required('health')
def create_health_record(organization_id, animal_collection, animal_id):
    animal_type = animal_collection[:-1]
    if animal_type not in ANIMAL_TYPES:
        return not_found('Not found.')
    try:
        animal = ANIMAL_LOOKUPS[animal_type](g.org_code, animal_id)
        if not animal:
            return not_found(f'{animal_type.capitalize()} not found')
        record = HealthRecord.create_record(
            g.org_code, animal_type, animal_id, request.get_json() or {}, g.user.get('email')
        )
        _after_create(record, animal.get('ear_tag') or animal.get('name'))
        return jsonify({'success': True, 'health_record': serialize(record)}), 201
    except Exception as e:
        return error_response(e)

@health_bp.route('/<any(sows, boars, piglets):animal_collection>/<animal_id>/health-records', methods=['GET'])
@organization_access_required('view')
def animal_health_records(organization_id, animal_collection, animal_id):
    animal_type = animal_collection[:-1]
    if animal_type not in ANIMAL_TYPES:
        return not_found('Not found.')
    try:
        return jsonify({
            'success': True,
            'health_records': serialize(HealthRecord.find_by_animal(g.org_code, animal_type, animal_id)),
            'total_cost': HealthRecord.total_cost_for_animal(g.org_code, animal_type, animal_id)
        })
    except Exception as e:
        return error_response(e)

@health_bp.route('/health-records/vaccines', methods=['POST'])
@organization_access_required('health')
def bulk_vaccines(organization_id):
    """Record one vaccine for many animals of the same type"""
    data = request.get_json() or {}
    animal_type = data.get('animal_type') or 'sow'
    try:
        records = HealthRecord.create_vaccine_records(
            g.org_code, animal_type, data.get('animal_ids') or [], data.get('vaccine_name'),
            vaccine_type=data.get('vaccine_type'),
            dosage=data.get('dosage'),
            batch_number=data.get('batch_number'),
            record_date=data.get('record_date'),
            next_due_date=data.get('next_due_date'),
            administered_by=data.get('administered_by'),
            cost=parse_float(data.get('cost'), 'Cost'),
            notes=data.get('notes'),
            recorded_by=g.user.get('email')
        )
        labels = _animal_labels(g.org_code)
        for record in records:
            _after_create(record, labels.get((animal_type, record['animal_id'])))
        logger.info(f"{g.org_code}: recorded {data.get('vaccine_name')} for {len(records)} animals")
        return jsonify({'success': True, 'created': len(records)}), 201
    except Exception as e:
        return error_response(e)

@health_bp.route('/health-records/<record_id>', methods=['GET'])
@organization_access_required('view')
def get_health_record(organization_id, record_id):
    try:
        record = HealthRecord.find_by_id(g.org_code, record_id)
        if not record:
            return not_found('Health record not found')
        return jsonify({'success': True, 'health_record': serialize(record)})
    except Exception as e:
        return error_response(e)

@health_bp.route('/health-records/<record_id>', methods=['PUT'])
@organization_access_required('health')
def update_health_record(organization_id, record_id):
    try:
        HealthRecord.update_record(g.org_code, record_id, request.get_json() or {})
        return jsonify({'success': True, 'health_record': serialize(HealthRecord.find_by_id(g.org_code, record_id))})
    except Exception as e:
        return error_response(e)

@health_bp.route('/health-records/<record_id>', methods=['DELETE'])
@organization_access_required('health')
def delete_health_record(organization_id, record_id):
    try:
        if not HealthRecord.find_by_id(g.org_code, record_id):
            return not_found('Health record not found')
        HealthRecord.delete_record(g.org_code, record_id)
        notification_service.cancel_scheduled_notifications(str(g.user['_id']), record_id)
        return jsonify({'success': True, 'message': 'Health record deleted.'})
    except Exception as e:
        return error_response(e)

@health_bp.route('/health-records/export', methods=['GET'])
@organization_access_required('view')
def export_health_records(organization_id):
    labels = _animal_labels(g.org_code)
    rows = []
    for record in HealthRecord.find_all(g.org_code, record_type=request.args.get('record_type'),
                                        animal_type=request.args.get('animal_type')):
        rows.append({
            'Date': format_date_for_csv(record.get('record_date')),
            'Animal Type': record.get('animal_type'),
            'Animal': labels.get((record['animal_type'], record['animal_id'])),
            'Record Type': record.get('record_type'),
            'Title': record.get('title'),
            'Description': record.get('description'),
            'Medication': record.get('medication_name'),
            'Dosage': record.get('dosage'),
            'Cost': record.get('cost'),
            'Administered By': record.get('administered_by'),
            'Veterinarian': record.get('veterinarian'),
            'Next Due': format_date_for_csv(record.get('next_due_date')),
            'Notes': record.get('notes')
        })
    return csv_response(rows, 'health-records')

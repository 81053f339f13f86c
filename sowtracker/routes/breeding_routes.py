from flask import Blueprint, request, jsonify, g
from datetime import datetime, timedelta
import logging
from sowtracker.models.sow import Sow
from sowtracker.models.piglet import Piglet
from sowtracker.models.breeding import BreedingAttempt, AIDose, MatrixTreatment
from sowtracker.models.farrowing import Farrowing
from sowtracker.services import breeding_service, notification_service
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils import breeding_dates
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_bool, parse_int
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

breeding_bp = Blueprint('breeding', __name__, url_prefix='/api/organizations/<organization_id>')

def _user_id():
    return str(g.user['_id'])

def _performed_by():
    return g.user.get('email') or _user_id()

def _with_sow_tags(records):
    sows = {s['_id']: s for s in Sow.find_by_ids(g.org_code, list({r['sow_id'] for r in records if r.get('sow_id')}))}
    for record in records:
        sow = sows.get(record.get('sow_id')) or {}
        record['sow_ear_tag'] = sow.get('ear_tag')
        record['sow_name'] = sow.get('name')
    return records

# Breeding

@breeding_bp.route('/breeding/bred-sows', methods=['GET'])
@organization_access_required('view')
def bred_sows(organization_id):
    status = request.args.get('status')
    if status and status not in ('pending', 'confirmed', 'open', 'farrowed'):
        return jsonify({'success': False, 'message': f'Invalid status filter: {status}'}), 400
    return jsonify({'success': True, 'sows': serialize(breeding_service.list_bred_sows(g.org_code, status))})

@breeding_bp.route('/sows/<sow_id>/breedings', methods=['GET'])
@organization_access_required('view')
def list_sow_breedings(organization_id, sow_id):
    try:
        if not Sow.find_by_id(g.org_code, sow_id, include_deleted=True):
            return not_found('Sow not found')
        return jsonify({
            'success': True,
            'breeding_attempts': serialize(BreedingAttempt.find_by_sow(g.org_code, sow_id)),
            'breeding_status': serialize(BreedingAttempt.get_breeding_status(g.org_code, sow_id))
        })
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/sows/<sow_id>/breedings', methods=['POST'])
@organization_access_required('write')
def record_breeding(organization_id, sow_id):
    try:
        attempt_id = breeding_service.record_breeding(
            g.org_code, sow_id, request.get_json() or {}, _user_id(), _performed_by()
        )
        return jsonify({
            'success': True,
            'message': 'Breeding recorded.',
            'breeding_attempt': serialize(BreedingAttempt.find_by_id(g.org_code, attempt_id))
        }), 201
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breeding/bulk', methods=['POST'])
@organization_access_required('write')
def bulk_record_breeding(organization_id):
    data = request.get_json() or {}
    try:
        result = breeding_service.bulk_record_breeding(
            g.org_code, data.get('sow_ids') or [], data, _user_id(), _performed_by()
        )
        return jsonify({'success': True, 'created': result['created'], 'errors': result['errors']})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>', methods=['GET'])
@organization_access_required('view')
def get_breeding(organization_id, attempt_id):
    try:
        attempt = BreedingAttempt.find_by_id(g.org_code, attempt_id)
        if not attempt:
            return not_found('Breeding attempt not found')
        return jsonify({
            'success': True,
            'breeding_attempt': serialize(_with_sow_tags([attempt])[0]),
            'doses': serialize(AIDose.find_by_attempt(g.org_code, attempt_id)),
            'pregnancy_check_date': serialize(breeding_dates.pregnancy_check_date(attempt['breeding_date'])),
            'expected_farrowing_date': serialize(breeding_dates.expected_farrowing_date(attempt['breeding_date']))
        })
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>', methods=['PUT'])
@organization_access_required('write')
def edit_breeding(organization_id, attempt_id):
    try:
        BreedingAttempt.edit_attempt(g.org_code, attempt_id, request.get_json() or {})
        return jsonify({'success': True, 'breeding_attempt': serialize(BreedingAttempt.find_by_id(g.org_code, attempt_id))})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_breeding(organization_id, attempt_id):
    try:
        if not BreedingAttempt.find_by_id(g.org_code, attempt_id):
            return not_found('Breeding attempt not found')
        BreedingAttempt.delete_attempt(g.org_code, attempt_id)
        notification_service.cancel_scheduled_notifications(_user_id(), attempt_id)
        return jsonify({'success': True, 'message': 'Breeding attempt deleted.'})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>/doses', methods=['POST'])
@organization_access_required('write')
def record_ai_dose(organization_id, attempt_id):
    data = request.get_json() or {}
    try:
        dose = AIDose.record_dose(
            g.org_code, attempt_id, data.get('dose_date'), data.get('dose_time'),
            data.get('boar_id'), data.get('notes')
        )
        if parse_bool(data.get('complete_cycle')):
            BreedingAttempt.complete_breeding_cycle(g.org_code, attempt_id)
        return jsonify({'success': True, 'dose': serialize(dose)}), 201
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>/complete', methods=['POST'])
@organization_access_required('write')
def complete_breeding_cycle(organization_id, attempt_id):
    try:
        if not BreedingAttempt.find_by_id(g.org_code, attempt_id):
            return not_found('Breeding attempt not found')
        BreedingAttempt.complete_breeding_cycle(g.org_code, attempt_id)
        return jsonify({'success': True, 'message': 'Breeding cycle completed.'})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>/confirm-pregnancy', methods=['POST'])
@organization_access_required('write')
def confirm_pregnancy(organization_id, attempt_id):
    data = request.get_json() or {}
    try:
        farrowing_id = breeding_service.confirm_pregnancy(
            g.org_code, attempt_id, data.get('check_date'), data.get('notes'), _user_id()
        )
        return jsonify({
            'success': True,
            'message': 'Pregnancy confirmed.',
            'farrowing': serialize(Farrowing.find_by_id(g.org_code, farrowing_id))
        })
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/breedings/<attempt_id>/returned-to-heat', methods=['POST'])
@organization_access_required('write')
def returned_to_heat(organization_id, attempt_id):
    data = request.get_json() or {}
    try:
        breeding_service.mark_returned_to_heat(
            g.org_code, attempt_id, data.get('check_date'), data.get('notes'), _user_id()
        )
        return jsonify({'success': True, 'message': 'Sow marked as returned to heat.'})
    except Exception as e:
        return error_response(e)

# Matrix treatments

@breeding_bp.route('/matrix-treatments', methods=['GET'])
@organization_access_required('view')
def list_matrix_treatments(organization_id):
    bred = request.args.get('bred')
    treatments = MatrixTreatment.find_all(g.org_code, bred=parse_bool(bred) if bred is not None else None)
    return jsonify({'success': True, 'treatments': serialize(_with_sow_tags(treatments))})

@breeding_bp.route('/matrix-treatments/batches', methods=['GET'])
@organization_access_required('view')
def list_matrix_batches(organization_id):
    return jsonify({'success': True, 'batches': serialize(MatrixTreatment.list_batches(g.org_code))})

@breeding_bp.route('/matrix-treatments', methods=['POST'])
@organization_access_required('write')
def record_matrix_batch(organization_id):
    try:
        treatment_ids = breeding_service.record_matrix_batch(g.org_code, request.get_json() or {}, _user_id())
        return jsonify({'success': True, 'created': len(treatment_ids), 'treatment_ids': treatment_ids}), 201
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/matrix-treatments/expected-heats', methods=['GET'])
@organization_access_required('view')
def expected_heats(organization_id):
    now = datetime.utcnow()
    start = datetime(now.year, now.month, now.day)
    try:
        days = parse_int(request.args.get('days'), 'days') or 7
        heats = MatrixTreatment.find_expected_heats(g.org_code, start, start + timedelta(days=days))
        return jsonify({'success': True, 'treatments': serialize(_with_sow_tags(heats))})
    except Exception as e:
        return error_response(e)

# Farrowing

@breeding_bp.route('/farrowings', methods=['GET'])
@organization_access_required('view')
def list_farrowings(organization_id):
    return jsonify({'success': True, 'farrowings': serialize(_with_sow_tags(Farrowing.find_all(g.org_code)))})

@breeding_bp.route('/farrowings/active', methods=['GET'])
@organization_access_required('view')
def active_farrowings(organization_id):
    farrowings = _with_sow_tags(Farrowing.find_active(g.org_code))
    for farrowing in farrowings:
        farrowing['days_since_farrowing'] = breeding_dates.days_since(farrowing['actual_farrowing_date'])
        farrowing['expected_weaning_date'] = breeding_dates.expected_weaning_date(farrowing['actual_farrowing_date'])
        farrowing['nursing_piglets'] = len(Piglet.find_by_farrowing(g.org_code, farrowing['_id'], status='nursing'))
    return jsonify({'success': True, 'farrowings': serialize(farrowings)})

@breeding_bp.route('/farrowings/upcoming', methods=['GET'])
@organization_access_required('view')
def upcoming_farrowings(organization_id):
    now = datetime.utcnow()
    start = datetime(now.year, now.month, now.day)
    try:
        days = parse_int(request.args.get('days'), 'days') or 7
        farrowings = _with_sow_tags(Farrowing.find_upcoming(g.org_code, start, start + timedelta(days=days)))
        for farrowing in farrowings:
            farrowing['days_until_farrowing'] = breeding_dates.days_until(farrowing['expected_farrowing_date'], now)
        return jsonify({'success': True, 'farrowings': serialize(farrowings)})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/sows/<sow_id>/move-to-farrowing', methods=['POST'])
@organization_access_required('write')
def move_to_farrowing(organization_id, sow_id):
    try:
        farrowing_id = breeding_service.move_to_farrowing(g.org_code, sow_id, request.get_json() or {}, _user_id())
        return jsonify({'success': True, 'farrowing': serialize(Farrowing.find_by_id(g.org_code, farrowing_id))}), 201
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/farrowings/<farrowing_id>', methods=['GET'])
@organization_access_required('view')
def get_farrowing(organization_id, farrowing_id):
    try:
        farrowing = Farrowing.find_by_id(g.org_code, farrowing_id)
        if not farrowing:
            return not_found('Farrowing not found')
        return jsonify({
            'success': True,
            'farrowing': serialize(_with_sow_tags([farrowing])[0]),
            'piglets': serialize(Piglet.find_by_farrowing(g.org_code, farrowing_id))
        })
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/farrowings/<farrowing_id>', methods=['PUT'])
@organization_access_required('write')
def edit_farrowing(organization_id, farrowing_id):
    try:
        Farrowing.edit_farrowing(g.org_code, farrowing_id, request.get_json() or {})
        return jsonify({'success': True, 'farrowing': serialize(Farrowing.find_by_id(g.org_code, farrowing_id))})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/farrowings/<farrowing_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_farrowing(organization_id, farrowing_id):
    try:
        if not Farrowing.find_by_id(g.org_code, farrowing_id):
            return not_found('Farrowing not found')
        Farrowing.delete_farrowing(g.org_code, farrowing_id)
        notification_service.cancel_scheduled_notifications(_user_id(), farrowing_id)
        return jsonify({'success': True, 'message': 'Farrowing deleted.'})
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/farrowings/<farrowing_id>/litter', methods=['POST'])
@organization_access_required('write')
def record_litter(organization_id, farrowing_id):
    try:
        result = breeding_service.record_litter(g.org_code, farrowing_id, request.get_json() or {}, _user_id())
        return jsonify({
            'success': True,
            'message': 'Litter recorded.',
            'piglets_created': result['piglets_created'],
            'litter_number': result['litter_number'],
            'farrowing': serialize(Farrowing.find_by_id(g.org_code, farrowing_id))
        })
    except Exception as e:
        return error_response(e)

@breeding_bp.route('/farrowings/<farrowing_id>/wean', methods=['POST'])
@organization_access_required('write')
def wean_litter(organization_id, farrowing_id):
    try:
        weaned = breeding_service.wean_litter(g.org_code, farrowing_id, request.get_json() or {}, _user_id())
        return jsonify({'success': True, 'message': f'{weaned} piglets weaned.', 'weaned': weaned})
    except Exception as e:
        return error_response(e)

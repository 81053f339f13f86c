from flask import Blueprint, request, jsonify, g
import csv
import io
import logging
from sowtracker.models.sow import Sow, SOW_STATUSES
from sowtracker.models.boar import Boar
from sowtracker.models.piglet import Piglet
from sowtracker.models.breeding import BreedingAttempt
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.housing import HousingUnit
from sowtracker.models.health import HealthRecord
from sowtracker.services.housing_service import location_history_for_sow
from sowtracker.services.pedigree import build_pedigree
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_date, parse_float, parse_bool
from sowtracker.utils.csv_export import csv_response, format_date_for_csv
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

herd_bp = Blueprint('herd', __name__, url_prefix='/api/organizations/<organization_id>')

def _performed_by():
    return g.user.get('email') or str(g.user['_id'])

# Sows

@herd_bp.route('/sows', methods=['GET'])
@organization_access_required('view')
def list_sows(organization_id):
    status = request.args.get('status')
    if status and status not in SOW_STATUSES:
        return jsonify({'success': False, 'message': f'Invalid status filter: {status}'}), 400
    sows = Sow.find_all(g.org_code, status=status, search=request.args.get('search'))

    units = {u['_id']: u for u in HousingUnit.find_all(g.org_code)}
    for sow in sows:
        sow.pop('audit_log', None)
        unit = units.get(sow.get('housing_unit_id'))
        sow['housing_unit_name'] = HousingUnit.display_name(unit) if unit else None
    return jsonify({'success': True, 'sows': serialize(sows)})

@herd_bp.route('/sows', methods=['POST'])
@organization_access_required('write')
def create_sow(organization_id):
    try:
        sow_id = Sow.create_sow(g.org_code, request.get_json() or {}, _performed_by())
        return jsonify({'success': True, 'sow': serialize(Sow.find_by_id(g.org_code, sow_id))}), 201
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/<sow_id>', methods=['GET'])
@organization_access_required('view')
def get_sow(organization_id, sow_id):
    """Sow detail with breeding status, housing and recent history"""
    try:
        sow = Sow.find_by_id(g.org_code, sow_id)
        if not sow:
            return not_found('Sow not found')
        sow.pop('audit_log', None)
        unit = HousingUnit.find_by_id(g.org_code, sow['housing_unit_id']) if sow.get('housing_unit_id') else None
        return jsonify({
            'success': True,
            'sow': serialize(sow),
            'breeding_status': serialize(BreedingAttempt.get_breeding_status(g.org_code, sow_id)),
            'current_housing': serialize(dict(unit, display_name=HousingUnit.display_name(unit))) if unit else None,
            'breeding_attempts': serialize(BreedingAttempt.find_by_sow(g.org_code, sow_id)),
            'farrowings': serialize(Farrowing.find_by_sow(g.org_code, sow_id)),
            'health_records': serialize(HealthRecord.find_by_animal(g.org_code, 'sow', sow_id)),
            'location_history': serialize(location_history_for_sow(g.org_code, sow_id))
        })
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/<sow_id>', methods=['PUT'])
@organization_access_required('write')
def update_sow(organization_id, sow_id):
    try:
        Sow.update_sow(g.org_code, sow_id, request.get_json() or {}, _performed_by())
        return jsonify({'success': True, 'sow': serialize(Sow.find_by_id(g.org_code, sow_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/<sow_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_sow(organization_id, sow_id):
    try:
        if not Sow.find_by_id(g.org_code, sow_id):
            return not_found('Sow not found')
        Sow.delete_sow(g.org_code, sow_id, _performed_by())
        return jsonify({'success': True, 'message': 'Sow deleted.'})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/<sow_id>/audit-log', methods=['GET'])
@organization_access_required('view')
def sow_audit_log(organization_id, sow_id):
    entries = sorted(Sow.get_audit_log(g.org_code, sow_id), key=lambda e: e['timestamp'], reverse=True)
    return jsonify({'success': True, 'audit_log': serialize(entries)})

@herd_bp.route('/sows/import', methods=['POST'])
@organization_access_required('write')
def import_sows(organization_id):
    """Import sows from an uploaded CSV file or a JSON `rows` array

    Pass dry_run=true to validate without inserting.
    """
    try:
        if 'file' in request.files:
            text = request.files['file'].read().decode('utf-8-sig')
            rows = [
                {(k or '').strip().lower().replace(' ', '_'): v for k, v in row.items()}
                for row in csv.DictReader(io.StringIO(text))
            ]
            dry_run = parse_bool(request.form.get('dry_run'))
        else:
            data = request.get_json() or {}
            rows = data.get('rows')
            dry_run = parse_bool(data.get('dry_run'))
        if not isinstance(rows, list) or not rows:
            return jsonify({'success': False, 'message': 'No rows to import'}), 400

        result = Sow.import_sows(g.org_code, rows, _performed_by(), dry_run=dry_run)
        logger.info(f"{g.org_code}: sow import - {result['success']} imported, {result['skipped']} skipped, "
                    f"{result['invalid']} invalid (dry_run={dry_run})")
        return jsonify({'success': True, 'dry_run': dry_run, 'result': serialize(result)})
    except UnicodeDecodeError:
        return jsonify({'success': False, 'message': 'File must be UTF-8 encoded CSV'}), 400
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/export', methods=['GET'])
@organization_access_required('view')
def export_sows(organization_id):
    units = {u['_id']: u for u in HousingUnit.find_all(g.org_code)}
    rows = []
    for sow in Sow.find_all(g.org_code, status=request.args.get('status')):
        unit = units.get(sow.get('housing_unit_id'))
        rows.append({
            'Ear Tag': sow.get('ear_tag'),
            'Name': sow.get('name'),
            'Birth Date': format_date_for_csv(sow.get('birth_date')),
            'Breed': sow.get('breed'),
            'Status': sow.get('status'),
            'Right Ear Notch': sow.get('right_ear_notch'),
            'Left Ear Notch': sow.get('left_ear_notch'),
            'Registration Number': sow.get('registration_number'),
            'Housing': HousingUnit.display_name(unit) if unit else None,
            'Notes': sow.get('notes')
        })
    return csv_response(rows, 'sows')

# Boars

@herd_bp.route('/boars', methods=['GET'])
@organization_access_required('view')
def list_boars(organization_id):
    boars = Boar.find_all(g.org_code, boar_type=request.args.get('boar_type'), status=request.args.get('status'))
    return jsonify({'success': True, 'boars': serialize(boars)})

@herd_bp.route('/boars', methods=['POST'])
@organization_access_required('write')
def create_boar(organization_id):
    try:
        boar_id = Boar.create_boar(g.org_code, request.get_json() or {}, _performed_by())
        return jsonify({'success': True, 'boar': serialize(Boar.find_by_id(g.org_code, boar_id))}), 201
    except Exception as e:
        return error_response(e)

@herd_bp.route('/boars/<boar_id>', methods=['GET'])
@organization_access_required('view')
def get_boar(organization_id, boar_id):
    try:
        boar = Boar.find_by_id(g.org_code, boar_id)
        if not boar:
            return not_found('Boar not found')
        return jsonify({
            'success': True,
            'boar': serialize(boar),
            'health_records': serialize(HealthRecord.find_by_animal(g.org_code, 'boar', boar_id))
        })
    except Exception as e:
        return error_response(e)

@herd_bp.route('/boars/<boar_id>', methods=['PUT'])
@organization_access_required('write')
def update_boar(organization_id, boar_id):
    try:
        Boar.update_boar(g.org_code, boar_id, request.get_json() or {})
        return jsonify({'success': True, 'boar': serialize(Boar.find_by_id(g.org_code, boar_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/boars/<boar_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_boar(organization_id, boar_id):
    try:
        if not Boar.find_by_id(g.org_code, boar_id):
            return not_found('Boar not found')
        Boar.delete_boar(g.org_code, boar_id)
        return jsonify({'success': True, 'message': 'Boar deleted.'})
    except Exception as e:
        return error_response(e)

# Piglets

@herd_bp.route('/piglets', methods=['GET'])
@organization_access_required('view')
def list_piglets(organization_id):
    piglets = Piglet.find_all(g.org_code, status=request.args.get('status'), sow_id=request.args.get('sow_id'))
    return jsonify({'success': True, 'piglets': serialize(piglets)})

@herd_bp.route('/piglets/<piglet_id>', methods=['GET'])
@organization_access_required('view')
def get_piglet(organization_id, piglet_id):
    try:
        piglet = Piglet.find_by_id(g.org_code, piglet_id)
        if not piglet:
            return not_found('Piglet not found')
        return jsonify({
            'success': True,
            'piglet': serialize(piglet),
            'health_records': serialize(HealthRecord.find_by_animal(g.org_code, 'piglet', piglet_id))
        })
    except Exception as e:
        return error_response(e)

@herd_bp.route('/sows/<animal_id>/pedigree', methods=['GET'], defaults={'animal_type': 'sow'})
@herd_bp.route('/boars/<animal_id>/pedigree', methods=['GET'], defaults={'animal_type': 'boar'})
@herd_bp.route('/piglets/<animal_id>/pedigree', methods=['GET'], defaults={'animal_type': 'piglet'})
@organization_access_required('view')
def get_pedigree(organization_id, animal_type, animal_id):
    try:
        return jsonify({'success': True, 'pedigree': serialize(build_pedigree(g.org_code, animal_type, animal_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/piglets/<piglet_id>', methods=['PUT'])
@organization_access_required('write')
def update_piglet(organization_id, piglet_id):
    try:
        Piglet.update_piglet(g.org_code, piglet_id, request.get_json() or {})
        return jsonify({'success': True, 'piglet': serialize(Piglet.find_by_id(g.org_code, piglet_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/piglets/<piglet_id>/deceased', methods=['POST'])
@organization_access_required('write')
def mark_piglet_deceased(organization_id, piglet_id):
    data = request.get_json() or {}
    try:
        Piglet.mark_deceased(g.org_code, piglet_id, parse_date(data.get('died_date'), 'date of death'), data.get('cause_of_death'))
        return jsonify({'success': True, 'piglet': serialize(Piglet.find_by_id(g.org_code, piglet_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/piglets/<piglet_id>/sold', methods=['POST'])
@organization_access_required('write')
def mark_piglet_sold(organization_id, piglet_id):
    data = request.get_json() or {}
    try:
        Piglet.mark_sold(g.org_code, piglet_id, parse_date(data.get('sold_date'), 'sale date'),
                         parse_float(data.get('sale_price'), 'sale price'))
        return jsonify({'success': True, 'piglet': serialize(Piglet.find_by_id(g.org_code, piglet_id))})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/piglets/<piglet_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_piglet(organization_id, piglet_id):
    try:
        Piglet.delete_piglet(g.org_code, piglet_id)
        return jsonify({'success': True, 'message': 'Piglet deleted.'})
    except Exception as e:
        return error_response(e)

@herd_bp.route('/piglets/export', methods=['GET'])
@organization_access_required('view')
def export_piglets(organization_id):
    sows = {s['_id']: s for s in Sow.find_all(g.org_code)}
    rows = []
    for piglet in Piglet.find_all(g.org_code, status=request.args.get('status')):
        sow = sows.get(piglet.get('sow_id')) or {}
        rows.append({
            'Ear Tag': piglet.get('ear_tag'),
            'Sow': sow.get('ear_tag'),
            'Birth Date': format_date_for_csv(piglet.get('birth_date')),
            'Sex': piglet.get('sex'),
            'Birth Weight': piglet.get('birth_weight'),
            'Weaning Weight': piglet.get('weaning_weight'),
            'Weaning Date': format_date_for_csv(piglet.get('weaning_date')),
            'Status': piglet.get('status'),
            'Right Ear Notch': piglet.get('right_ear_notch'),
            'Left Ear Notch': piglet.get('left_ear_notch')
        })
    return csv_response(rows, 'piglets')

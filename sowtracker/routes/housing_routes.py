from flask import Blueprint, request, jsonify, g
import logging
from sowtracker.models.housing import HousingUnit
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.services import housing_service
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_int, parse_float
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

housing_bp = Blueprint('housing', __name__, url_prefix='/api/organizations/<organization_id>')

def _performed_by():
    return g.user.get('email') or str(g.user['_id'])

@housing_bp.route('/housing-units', methods=['GET'])
@organization_access_required('view')
def list_units(organization_id):
    """Units with current occupancy and display names"""
    units = HousingUnit.find_with_occupancy(g.org_code, request.args.get('type'))
    return jsonify({'success': True, 'housing_units': serialize(units)})

@housing_bp.route('/housing-units', methods=['POST'])
@organization_access_required('write')
def create_unit(organization_id):
    try:
        unit_id = HousingUnit.create_unit(g.org_code, request.get_json() or {}, FarmSettings.is_prop12_enabled(g.org_code))
        return jsonify({'success': True, 'housing_unit': serialize(HousingUnit.find_by_id(g.org_code, unit_id))}), 201
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing-units/bulk', methods=['POST'])
@organization_access_required('write')
def bulk_create_units(organization_id):
    data = request.get_json() or {}
    try:
        created = HousingUnit.bulk_create_units(
            g.org_code,
            data.get('building_base_name'),
            parse_int(data.get('building_start'), 'building start', required=True),
            parse_int(data.get('building_end'), 'building end', required=True),
            parse_int(data.get('pen_start'), 'pen start', required=True),
            parse_int(data.get('pen_end'), 'pen end', required=True),
            unit_type=data.get('type') or 'other',
            square_footage=parse_float(data.get('square_footage'), 'square footage'),
            capacity_per_unit=parse_int(data.get('capacity_per_unit'), 'capacity per unit'),
            prop12_enabled=FarmSettings.is_prop12_enabled(g.org_code)
        )
        logger.info(f"{g.org_code}: bulk created {created} housing units")
        return jsonify({'success': True, 'created': created}), 201
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing-units/<unit_id>', methods=['GET'])
@organization_access_required('view')
def get_unit(organization_id, unit_id):
    try:
        unit = HousingUnit.find_by_id(g.org_code, unit_id)
        if not unit:
            return not_found('Housing unit not found')
        unit['display_name'] = HousingUnit.display_name(unit)
        unit['current_occupancy'] = HousingUnit.current_occupancy(g.org_code, unit_id)
        sows = housing_service.sows_in_unit(g.org_code, unit_id)
        for sow in sows:
            sow.pop('audit_log', None)
        return jsonify({'success': True, 'housing_unit': serialize(unit), 'sows': serialize(sows)})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing-units/<unit_id>', methods=['PUT'])
@organization_access_required('write')
def update_unit(organization_id, unit_id):
    try:
        HousingUnit.update_unit(g.org_code, unit_id, request.get_json() or {}, FarmSettings.is_prop12_enabled(g.org_code))
        return jsonify({'success': True, 'housing_unit': serialize(HousingUnit.find_by_id(g.org_code, unit_id))})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing-units/<unit_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_unit(organization_id, unit_id):
    try:
        if not HousingUnit.find_by_id(g.org_code, unit_id):
            return not_found('Housing unit not found')
        HousingUnit.delete_unit(g.org_code, unit_id)
        return jsonify({'success': True, 'message': 'Housing unit deleted.'})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing-units/<unit_id>/history', methods=['GET'])
@organization_access_required('view')
def unit_history(organization_id, unit_id):
    try:
        return jsonify({'success': True, 'history': serialize(housing_service.location_history_for_unit(g.org_code, unit_id))})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/sows/<sow_id>/housing', methods=['POST'])
@organization_access_required('write')
def assign_housing(organization_id, sow_id):
    """Move a sow into a unit; a null housing_unit_id removes her from housing"""
    data = request.get_json() or {}
    try:
        housing_service.assign_housing(
            g.org_code, sow_id, data.get('housing_unit_id'), data.get('reason'), data.get('notes'),
            data.get('moved_at'), _performed_by()
        )
        return jsonify({'success': True, 'message': 'Housing updated.'})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/housing/bulk-assign', methods=['POST'])
@organization_access_required('write')
def bulk_assign_housing(organization_id):
    data = request.get_json() or {}
    try:
        result = housing_service.bulk_assign_housing(
            g.org_code, data.get('sow_ids') or [], data.get('housing_unit_id'),
            data.get('reason'), data.get('notes'), _performed_by()
        )
        return jsonify({'success': True, 'assigned': result['assigned'], 'errors': result['errors']})
    except Exception as e:
        return error_response(e)

@housing_bp.route('/sows/<sow_id>/location-history', methods=['GET'])
@organization_access_required('view')
def sow_location_history(organization_id, sow_id):
    try:
        return jsonify({'success': True, 'history': serialize(housing_service.location_history_for_sow(g.org_code, sow_id))})
    except Exception as e:
        return error_response(e)

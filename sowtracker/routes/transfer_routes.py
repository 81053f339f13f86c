from flask import Blueprint, request, session, jsonify, g
import logging
from sowtracker.models.user import User
from sowtracker.models.transfer import TransferRequest
from sowtracker.services import transfer_service
from sowtracker.routes.auth_routes import login_required, organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_bool
from sowtracker.utils.responses import error_response

logger = logging.getLogger(__name__)

transfer_bp = Blueprint('transfer', __name__, url_prefix='/api')

def _current_user():
    user = User.find_by_id(session['user_id'])
    if not user:
        raise PermissionError('Authentication required.')
    return user

@transfer_bp.route('/organizations/<organization_id>/transfers', methods=['POST'])
@organization_access_required('write')
def request_transfer(organization_id):
    data = request.get_json() or {}
    data['retain_records'] = parse_bool(data.get('retain_records'))
    try:
        transfer = transfer_service.request_transfer(
            g.organization, data.get('animal_type'), data.get('animal_id'), g.user, data
        )
        return jsonify({'success': True, 'transfer': serialize(transfer)}), 201
    except Exception as e:
        return error_response(e)

@transfer_bp.route('/transfers/received', methods=['GET'])
@login_required
def received_transfers():
    user = User.find_by_id(session['user_id'])
    return jsonify({'success': True, 'transfers': serialize(TransferRequest.find_received(user['email']))})

@transfer_bp.route('/transfers/sent', methods=['GET'])
@login_required
def sent_transfers():
    return jsonify({'success': True, 'transfers': serialize(TransferRequest.find_sent(session['user_id']))})

@transfer_bp.route('/transfers/<request_id>/accept', methods=['POST'])
@login_required
def accept_transfer(request_id):
    """Accept into the organization named in the body (defaults to the selected one)"""
    data = request.get_json() or {}
    target_organization_id = data.get('organization_id') or session.get('selected_organization_id')
    if not target_organization_id:
        return jsonify({'success': False, 'message': 'Choose an organization to receive the animal.'}), 400
    try:
        result = transfer_service.accept_transfer(request_id, _current_user(), target_organization_id)
        return jsonify({
            'success': True,
            'message': 'Transfer accepted.',
            'animal_id': str(result['animal_id']),
            'health_records_copied': result['health_records_copied']
        })
    except Exception as e:
        return error_response(e)

@transfer_bp.route('/transfers/<request_id>/decline', methods=['POST'])
@login_required
def decline_transfer(request_id):
    try:
        transfer_service.decline_transfer(request_id, _current_user())
        return jsonify({'success': True, 'message': 'Transfer declined.'})
    except Exception as e:
        return error_response(e)

@transfer_bp.route('/transfers/<request_id>/cancel', methods=['POST'])
@login_required
def cancel_transfer(request_id):
    try:
        transfer_service.cancel_transfer(request_id, _current_user())
        return jsonify({'success': True, 'message': 'Transfer cancelled.'})
    except Exception as e:
        return error_response(e)

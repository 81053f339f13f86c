from flask import Blueprint, request, session, jsonify, g
import logging
from sowtracker.models.user import User
from sowtracker.models.organization import Organization, OrganizationMember
from sowtracker.models.team_invite import TeamInvite
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.services.dashboard_service import get_dashboard_stats
from sowtracker.routes.auth_routes import login_required, organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

organization_bp = Blueprint('organization', __name__, url_prefix='/api/organizations')

@organization_bp.route('', methods=['GET'])
@login_required
def list_organizations():
    organizations = Organization.find_for_user(session['user_id'])
    return jsonify({
        'success': True,
        'organizations': serialize(organizations),
        'selected_organization_id': session.get('selected_organization_id')
    })

@organization_bp.route('', methods=['POST'])
@login_required
def create_organization():
    data = request.get_json() or {}
    try:
        organization_id = Organization.create_organization(data.get('name'), session['user_id'])
        session['selected_organization_id'] = organization_id
        organization = Organization.find_by_id(organization_id)
        logger.info(f"Organization {organization['slug']} created by {session.get('email')}")
        return jsonify({'success': True, 'organization': serialize(organization)}), 201
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>/select', methods=['POST'])
@organization_access_required('view')
def select_organization(organization_id):
    session['selected_organization_id'] = str(g.organization['_id'])
    return jsonify({'success': True, 'selected_organization_id': session['selected_organization_id']})

@organization_bp.route('/<organization_id>', methods=['GET'])
@organization_access_required('view')
def get_organization(organization_id):
    organization = dict(g.organization)
    organization['role'] = g.membership['role']
    return jsonify({'success': True, 'organization': serialize(organization)})

@organization_bp.route('/<organization_id>', methods=['PUT'])
@organization_access_required('manage_organization')
def update_organization(organization_id):
    try:
        Organization.update_organization(organization_id, request.get_json() or {})
        return jsonify({'success': True, 'organization': serialize(Organization.find_by_id(organization_id))})
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>', methods=['DELETE'])
@organization_access_required('manage_organization')
def delete_organization(organization_id):
    Organization.delete_organization(organization_id)
    if session.get('selected_organization_id') == organization_id:
        session['selected_organization_id'] = None
    return jsonify({'success': True, 'message': 'Organization deleted.'})

@organization_bp.route('/<organization_id>/dashboard', methods=['GET'])
@organization_access_required('view')
def dashboard(organization_id):
    try:
        return jsonify({'success': True, 'stats': get_dashboard_stats(g.org_code)})
    except Exception as e:
        return error_response(e)

# Members

@organization_bp.route('/<organization_id>/members', methods=['GET'])
@organization_access_required('view')
def list_members(organization_id):
    members = OrganizationMember.find_by_organization(organization_id)
    return jsonify({'success': True, 'members': serialize(members)})

@organization_bp.route('/<organization_id>/members', methods=['POST'])
@organization_access_required('manage_members')
def add_member(organization_id):
    """Add an existing user by email"""
    data = request.get_json() or {}
    user = User.find_by_email(data.get('email'))
    if not user:
        return not_found('No user with that email address. Send an invite instead.')
    if OrganizationMember.find_membership(organization_id, user['_id']):
        return jsonify({'success': False, 'message': 'User is already a member of this organization.'}), 400
    try:
        role = data.get('role') or 'member'
        if role == 'owner' and g.membership['role'] != 'owner':
            raise PermissionError('Only owners can add owners.')
        membership = OrganizationMember.add_member(organization_id, user['_id'], role, invited_by=g.user['_id'])
        return jsonify({'success': True, 'member': serialize(membership)}), 201
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>/members/<user_id>', methods=['PUT'])
@organization_access_required('manage_members')
def change_member_role(organization_id, user_id):
    data = request.get_json() or {}
    try:
        if data.get('role') == 'owner' and g.membership['role'] != 'owner':
            raise PermissionError('Only owners can promote members to owner.')
        OrganizationMember.change_role(organization_id, user_id, data.get('role'), g.user['_id'])
        return jsonify({'success': True, 'message': 'Role updated.'})
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>/members/<user_id>', methods=['DELETE'])
@organization_access_required('manage_members')
def remove_member(organization_id, user_id):
    try:
        OrganizationMember.remove_member(organization_id, user_id)
        return jsonify({'success': True, 'message': 'Member removed.'})
    except Exception as e:
        return error_response(e)

# Invites

@organization_bp.route('/<organization_id>/invites', methods=['GET'])
@organization_access_required('manage_members')
def list_invites(organization_id):
    return jsonify({'success': True, 'invites': serialize(TeamInvite.find_pending(organization_id))})

@organization_bp.route('/<organization_id>/invites', methods=['POST'])
@organization_access_required('manage_members')
def create_invite(organization_id):
    data = request.get_json() or {}
    try:
        invite = TeamInvite.create_invite(organization_id, data.get('email'), data.get('role') or 'member', g.user['_id'])
        return jsonify({'success': True, 'invite': serialize(invite)}), 201
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>/invites/<invite_id>', methods=['DELETE'])
@organization_access_required('manage_members')
def revoke_invite(organization_id, invite_id):
    if not TeamInvite.revoke_invite(organization_id, invite_id):
        return not_found('Invite not found.')
    return jsonify({'success': True, 'message': 'Invite revoked.'})

@organization_bp.route('/invites/<token>', methods=['GET'])
def get_invite(token):
    """Public invite lookup used by the signup page"""
    try:
        invite = TeamInvite.get_valid_invite(token)
        organization = Organization.find_by_id(invite['organization_id'])
        return jsonify({
            'success': True,
            'invite': {
                'email': invite['email'],
                'role': invite['role'],
                'expires_at': serialize(invite['expires_at']),
                'organization_name': organization['name'] if organization else None
            }
        })
    except Exception as e:
        return error_response(e)

@organization_bp.route('/invites/<token>/accept', methods=['POST'])
@login_required
def accept_invite(token):
    try:
        user = User.find_by_id(session['user_id'])
        membership = TeamInvite.accept_invite(token, user)
        session['selected_organization_id'] = str(membership['organization_id'])
        return jsonify({'success': True, 'membership': serialize(membership)})
    except Exception as e:
        return error_response(e)

# Farm settings

@organization_bp.route('/<organization_id>/settings', methods=['GET'])
@organization_access_required('view')
def get_settings(organization_id):
    return jsonify({'success': True, 'settings': serialize(FarmSettings.get_settings(g.org_code))})

@organization_bp.route('/<organization_id>/settings', methods=['PUT'])
@organization_access_required('manage_organization')
def update_settings(organization_id):
    try:
        settings = FarmSettings.update_settings(g.org_code, request.get_json() or {})
        return jsonify({'success': True, 'settings': serialize(settings)})
    except Exception as e:
        return error_response(e)

@organization_bp.route('/<organization_id>/settings/reset-litter-counter', methods=['POST'])
@organization_access_required('manage_organization')
def reset_litter_counter(organization_id):
    FarmSettings.reset_litter_counter(g.org_code)
    return jsonify({'success': True, 'settings': serialize(FarmSettings.get_settings(g.org_code))})

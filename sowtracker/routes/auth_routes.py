from flask import Blueprint, request, session, jsonify, g
from functools import wraps
import logging
from sowtracker.models.user import User
from sowtracker.models.organization import Organization, OrganizationMember
from sowtracker.models.team_invite import TeamInvite
from sowtracker.utils.serialization import serialize

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

def login_required(f):
    """Decorator to require login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'success': False, 'message': 'Authentication required.'}), 401
        return f(*args, **kwargs)
    return decorated_function

def admin_required(f):
    """Decorator to require a site administrator"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'success': False, 'message': 'Authentication required.'}), 401
        if not session.get('is_admin'):
            return jsonify({'success': False, 'message': 'Access denied. Administrator access required.'}), 403
        return f(*args, **kwargs)
    return decorated_function

def organization_access_required(permission='view', organization_id_param='organization_id'):
    """Decorator to verify the user holds `permission` in the organization

    Sets g.user, g.organization, g.membership and g.org_code for the handler.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if 'user_id' not in session:
                return jsonify({'success': False, 'message': 'Authentication required.'}), 401

            user = User.find_by_id(session['user_id'])
            if not user or not user.get('is_active', True):
                session.clear()
                return jsonify({'success': False, 'message': 'Authentication required.'}), 401

            organization = Organization.find_by_id(kwargs.get(organization_id_param))
            if not organization:
                return jsonify({'success': False, 'message': 'Organization not found.'}), 404

            membership = OrganizationMember.find_membership(organization['_id'], user['_id'])
            if not membership:
                return jsonify({'success': False, 'message': 'Access denied. You are not a member of this organization.'}), 403
            if not OrganizationMember.has_permission(membership['role'], permission):
                return jsonify({'success': False, 'message': f'Access denied. Your role cannot {permission.replace("_", " ")}.'}), 403

            g.user = user
            g.organization = organization
            g.membership = membership
            g.org_code = organization['slug']
            return f(*args, **kwargs)
        return decorated_function
    return decorator

def _start_session(user):
    session['user_id'] = str(user['_id'])
    session['email'] = user['email']
    session['is_admin'] = user.get('is_admin', False)
    organizations = Organization.find_for_user(user['_id'])
    session['selected_organization_id'] = str(organizations[0]['_id']) if organizations else None

@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Create an account and sign in, accepting an invite when a token is given"""
    data = request.get_json() or {}
    try:
        if User.find_by_email(data.get('email')):
            return jsonify({'success': False, 'message': 'An account with this email already exists.'}), 400
        user_id = User.create_user(data.get('email'), data.get('password'), data.get('full_name'))
        user = User.find_by_id(user_id)

        invite_error = None
        if data.get('invite_token'):
            try:
                TeamInvite.accept_invite(data['invite_token'], user)
            except (ValueError, LookupError) as e:
                invite_error = str(e)

        _start_session(user)
        logger.info(f"New account created for {user['email']}")
        return jsonify({
            'success': True,
            'message': 'Account created successfully.',
            'user': serialize(user),
            'invite_error': invite_error
        }), 201
    except ValueError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        logger.exception("Signup failed")
        return jsonify({'success': False, 'message': f'Error processing request: {str(e)}'}), 500

@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json() or {}
    user = User.find_by_email(data.get('email'))

    if user and User.verify_password(user['password_hash'], data.get('password')):
        if not user.get('is_active', True):
            return jsonify({'success': False, 'message': 'Account is inactive.'}), 403
        _start_session(user)
        return jsonify({
            'success': True,
            'user': serialize(user),
            'selected_organization_id': session.get('selected_organization_id')
        })

    return jsonify({'success': False, 'message': 'Invalid email or password.'}), 401

@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True, 'message': 'You have been logged out.'})

@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    """Current user's profile with organization memberships"""
    user = User.find_by_id(session['user_id'])
    if not user:
        session.clear()
        return jsonify({'success': False, 'message': 'Authentication required.'}), 401
    return jsonify({
        'success': True,
        'user': serialize(user),
        'organizations': serialize(Organization.find_for_user(user['_id'])),
        'selected_organization_id': session.get('selected_organization_id')
    })

@auth_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json() or {}
    try:
        User.update_user(session['user_id'], {k: v for k, v in data.items() if k in ('full_name',)})
        return jsonify({'success': True, 'user': serialize(User.find_by_id(session['user_id']))})
    except ValueError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    data = request.get_json() or {}
    user = User.find_by_id(session['user_id'])
    if not user or not User.verify_password(user['password_hash'], data.get('current_password')):
        return jsonify({'success': False, 'message': 'Current password is incorrect.'}), 400
    try:
        User.change_password(user['_id'], data.get('new_password'))
        return jsonify({'success': True, 'message': 'Password updated.'})
    except ValueError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

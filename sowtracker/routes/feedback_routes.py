from flask import Blueprint, request, session, jsonify
import logging
from sowtracker.models.user import User
from sowtracker.models.feedback import Feedback
from sowtracker.routes.auth_routes import login_required, admin_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.responses import error_response

logger = logging.getLogger(__name__)

feedback_bp = Blueprint('feedback', __name__, url_prefix='/api/feedback')

@feedback_bp.route('', methods=['POST'])
@login_required
def submit_feedback():
    try:
        user = User.find_by_id(session['user_id'])
        feedback_id = Feedback.create_feedback(user, request.get_json() or {})
        logger.info(f"Feedback {feedback_id} submitted by {user.get('email')}")
        return jsonify({'success': True, 'id': feedback_id, 'message': 'Thank you for your feedback!'}), 201
    except Exception as e:
        return error_response(e)

@feedback_bp.route('/mine', methods=['GET'])
@login_required
def my_feedback():
    return jsonify({'success': True, 'feedback': serialize(Feedback.find_by_user(session['user_id']))})

@feedback_bp.route('', methods=['GET'])
@admin_required
def list_feedback():
    feedback = Feedback.find_all(status=request.args.get('status'), feedback_type=request.args.get('feedback_type'))
    return jsonify({'success': True, 'feedback': serialize(feedback)})

@feedback_bp.route('/<feedback_id>', methods=['PUT'])
@admin_required
def update_feedback(feedback_id):
    data = request.get_json() or {}
    try:
        Feedback.update_status(feedback_id, data.get('status'), data.get('admin_notes'))
        return jsonify({'success': True, 'message': 'Feedback updated.'})
    except Exception as e:
        return error_response(e)

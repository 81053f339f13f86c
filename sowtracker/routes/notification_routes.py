from flask import Blueprint, request, session, jsonify
import logging
from config import Config
from sowtracker.models.notification import Notification, ScheduledNotification, NotificationPreferences
from sowtracker.services.push_service import send_push
from sowtracker.routes.auth_routes import login_required
from sowtracker.routes.cron_routes import cron_secret_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_bool, parse_int
from sowtracker.utils.responses import error_response

logger = logging.getLogger(__name__)

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')

@notification_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    try:
        notifications = Notification.find_for_user(
            session['user_id'],
            unread_only=parse_bool(request.args.get('unread_only')),
            limit=parse_int(request.args.get('limit'), 'limit') or 50
        )
        return jsonify({
            'success': True,
            'notifications': serialize(notifications),
            'unread_count': Notification.count_unread(session['user_id'])
        })
    except Exception as e:
        return error_response(e)

@notification_bp.route('/unread-count', methods=['GET'])
@login_required
def unread_count():
    return jsonify({'success': True, 'unread_count': Notification.count_unread(session['user_id'])})

@notification_bp.route('/<notification_id>/read', methods=['POST'])
@login_required
def mark_read(notification_id):
    try:
        Notification.mark_read(session['user_id'], notification_id)
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e)

@notification_bp.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    updated = Notification.mark_all_read(session['user_id'])
    return jsonify({'success': True, 'updated': updated})

@notification_bp.route('/<notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id):
    try:
        Notification.delete_notification(session['user_id'], notification_id)
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e)

@notification_bp.route('/scheduled', methods=['GET'])
@login_required
def scheduled_notifications():
    """Unsent reminders queued for the current user"""
    return jsonify({
        'success': True,
        'scheduled': serialize(ScheduledNotification.find_pending_for_user(session['user_id']))
    })

@notification_bp.route('/preferences', methods=['GET'])
@login_required
def get_preferences():
    prefs = NotificationPreferences.get_preferences(session['user_id'])
    return jsonify({
        'success': True,
        'preferences': serialize(prefs),
        'vapid_public_key': Config.VAPID_PUBLIC_KEY
    })

@notification_bp.route('/preferences', methods=['PUT'])
@login_required
def update_preferences():
    try:
        prefs = NotificationPreferences.update_preferences(session['user_id'], request.get_json() or {})
        return jsonify({'success': True, 'preferences': serialize(prefs)})
    except Exception as e:
        return error_response(e)

@notification_bp.route('/push-subscription', methods=['POST'])
@login_required
def save_push_subscription():
    data = request.get_json() or {}
    try:
        NotificationPreferences.save_push_subscription(session['user_id'], data.get('subscription') or data)
        return jsonify({'success': True, 'message': 'Push notifications enabled.'})
    except Exception as e:
        return error_response(e)

@notification_bp.route('/push-subscription', methods=['DELETE'])
@login_required
def remove_push_subscription():
    NotificationPreferences.remove_push_subscription(session['user_id'], disable=True)
    return jsonify({'success': True, 'message': 'Push notifications disabled.'})

@notification_bp.route('/send-push', methods=['POST'])
@cron_secret_required
def send_push_notification():
    """Deliver one stored notification over Web Push"""
    data = request.get_json() or {}
    try:
        body, status = send_push(data.get('notificationId'))
        return jsonify(body), status
    except Exception as e:
        logger.exception("[Push] Unexpected error sending push notification")
        return jsonify({'success': False, 'message': f'Error processing request: {str(e)}'}), 500

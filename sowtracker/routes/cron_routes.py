from flask import Blueprint, request, jsonify
from functools import wraps
import logging
from config import Config
from sowtracker.services.notification_cron import process_due_notifications, check_event_notifications

logger = logging.getLogger(__name__)

cron_bp = Blueprint('cron', __name__, url_prefix='/api/cron')

def cron_secret_required(f):
    """Decorator to require `Authorization: Bearer <CRON_SECRET>`

    Endpoints stay open when no CRON_SECRET is configured.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if Config.CRON_SECRET:
            auth_header = request.headers.get('Authorization', '')
            if auth_header != f'Bearer {Config.CRON_SECRET}':
                logger.warning(f"[Cron] Unauthorized request to {request.path}")
                return jsonify({'success': False, 'message': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function

@cron_bp.route('/process-notifications', methods=['GET', 'POST'])
@cron_secret_required
def process_notifications():
    """Deliver scheduled notifications that are due"""
    try:
        results = process_due_notifications()
        message = 'Notifications processed' if results['processed'] else 'No notifications to process'
        return jsonify({'success': True, 'message': message, **results})
    except Exception as e:
        logger.exception("[Cron] Fatal error processing notifications")
        return jsonify({'success': False, 'message': f'Error processing request: {str(e)}'}), 500

@cron_bp.route('/check-event-notifications', methods=['GET', 'POST'])
@cron_secret_required
def check_events():
    """Schedule reminders for upcoming farrowings, weanings, heats and pregnancy checks"""
    try:
        results = check_event_notifications()
        return jsonify({'success': True, 'message': 'Event notifications checked', **results})
    except Exception as e:
        logger.exception("[Cron] Fatal error checking events")
        return jsonify({'success': False, 'message': f'Error processing request: {str(e)}'}), 500

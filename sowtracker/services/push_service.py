"""Web push delivery for in-app notifications"""
import json
import logging
from pywebpush import webpush, WebPushException
from config import Config
from sowtracker.models.notification import Notification, NotificationPreferences

logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'Sow Tracker Notification'
ICON = '/icon-192x192.png'
BADGE = '/icon-96x96.png'

TYPE_URLS = {
    'farrowing': '/sows',
    'breeding': '/sows',
    'pregnancy_check': '/sows',
    'weaning': '/sows',
    'vaccination': '/health',
    'health': '/health',
    'task': '/tasks',
    'compliance': '/reports',
    'matrix': '/health',
    'transfer': '/sows',
}

def get_notification_url(notification, base_url=None):
    """Absolute URL the push notification opens

    A notification's own action_url wins over the type mapping.
    """
    base_url = (base_url or Config.APP_URL or '').rstrip('/')
    path = notification.get('action_url') or TYPE_URLS.get(notification.get('type'), '/')
    if path.startswith('http://') or path.startswith('https://'):
        return path
    if not path.startswith('/'):
        path = '/' + path
    return f"{base_url}{path}"

def build_push_payload(notification):
    return {
        'title': notification.get('title') or DEFAULT_TITLE,
        'body': notification.get('message') or notification.get('body'),
        'icon': ICON,
        'badge': BADGE,
        'tag': notification.get('type'),
        'notificationId': str(notification['_id']),
        'type': notification.get('type'),
        'url': get_notification_url(notification),
    }

def send_push(notification_id):
    """Deliver one notification to the user's push subscription

    Returns:
        (response_body, http_status) tuple
    """
    if not notification_id:
        return {'success': False, 'message': 'Notification ID is required'}, 400

    notification = Notification.find_by_id(notification_id)
    if not notification:
        return {'success': False, 'message': 'Notification not found'}, 404

    prefs = NotificationPreferences.get_preferences(notification['user_id'])
    if not prefs.get('push_enabled'):
        return {'success': False, 'message': 'User has push notifications disabled'}, 400

    subscription = prefs.get('push_subscription')
    if not subscription:
        return {'success': False, 'message': 'No push subscription found for user'}, 400

    payload = build_push_payload(notification)
    try:
        webpush(
            subscription_info=subscription,
            data=json.dumps(payload),
            vapid_private_key=Config.VAPID_PRIVATE_KEY,
            vapid_claims={'sub': f"mailto:{Config.VAPID_EMAIL}"}
        )
    except WebPushException as e:
        status_code = getattr(getattr(e, 'response', None), 'status_code', None)
        logger.error(f"[Push] Error sending push notification {notification_id}: {e}")
        if status_code == 410:
            NotificationPreferences.remove_push_subscription(notification['user_id'], disable=True)
            Notification.mark_push_error(notification_id, 'Subscription expired')
            return {'success': False, 'message': 'Push subscription expired and has been removed'}, 410
        Notification.mark_push_error(notification_id, str(e) or 'Unknown error')
        return {'success': False, 'message': 'Failed to send push notification', 'details': str(e)}, 500

    Notification.mark_push_sent(notification_id)
    logger.info(f"[Push] Sent notification {notification_id}")
    return {'success': True, 'message': 'Push notification sent successfully'}, 200

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from bson import ObjectId
from sowtracker import db

NOTIFICATION_TYPES = [
    'farrowing', 'breeding', 'pregnancy_check', 'weaning', 'vaccination',
    'health', 'task', 'transfer', 'compliance', 'matrix',
    'farrowing_alert', 'weaning_reminder', 'breeding_reminder'
]
CHANNELS = ['in_app', 'push', 'email']

DEFAULT_PREFERENCES = {
    'push_enabled': True,
    'push_subscription': None,
    'email_enabled': True,
    'email_daily_digest': False,
    'notify_farrowing': True,
    'notify_breeding': True,
    'notify_pregnancy_check': True,
    'notify_weaning': True,
    'notify_vaccination': True,
    'notify_health_records': True,
    'notify_tasks': True,
    'notify_compliance': True,
    'notify_matrix': False,
    'notify_transfers': False,
    'quiet_hours_start': None,
    'quiet_hours_end': None,
    'timezone': 'America/Los_Angeles',
    'farrowing_reminder_days': [7, 3, 1],
    'pregnancy_check_reminder_days': [1],
    'weaning_reminder_days': [3, 1],
    'vaccination_reminder_days': [7, 3, 1],
}

def _clean_channels(channels):
    channels = [c for c in (channels or ['in_app', 'push']) if c in CHANNELS]
    return channels or ['in_app']

class Notification:
    @staticmethod
    def create_notification(user_id, notification_type, title, message, action_url=None, related_id=None, channels=None):
        """Create an in-app notification for a user"""
        notification_data = {
            'user_id': ObjectId(user_id),
            'type': notification_type,
            'title': title,
            'message': message,
            'action_url': action_url,
            'related_id': str(related_id) if related_id else None,
            'channels': _clean_channels(channels),
            'read': False,
            'read_at': None,
            'push_sent_at': None,
            'push_error': None,
            'created_at': datetime.utcnow()
        }
        result = db.notifications.insert_one(notification_data)
        notification_data['_id'] = result.inserted_id
        return notification_data

    @staticmethod
    def find_by_id(notification_id):
        return db.notifications.find_one({'_id': ObjectId(notification_id)})

    @staticmethod
    def find_for_user(user_id, unread_only=False, limit=50):
        query = {'user_id': ObjectId(user_id)}
        if unread_only:
            query['read'] = False
        return list(db.notifications.find(query).sort('created_at', -1).limit(limit))

    @staticmethod
    def count_unread(user_id):
        return db.notifications.count_documents({'user_id': ObjectId(user_id), 'read': False})

    @staticmethod
    def mark_read(user_id, notification_id):
        result = db.notifications.update_one(
            {'_id': ObjectId(notification_id), 'user_id': ObjectId(user_id)},
            {'$set': {'read': True, 'read_at': datetime.utcnow()}}
        )
        if result.matched_count == 0:
            raise LookupError('Notification not found')

    @staticmethod
    def mark_all_read(user_id):
        result = db.notifications.update_many(
            {'user_id': ObjectId(user_id), 'read': False},
            {'$set': {'read': True, 'read_at': datetime.utcnow()}}
        )
        return result.modified_count

    @staticmethod
    def delete_notification(user_id, notification_id):
        result = db.notifications.delete_one({'_id': ObjectId(notification_id), 'user_id': ObjectId(user_id)})
        if result.deleted_count == 0:
            raise LookupError('Notification not found')

    @staticmethod
    def mark_push_sent(notification_id):
        db.notifications.update_one(
            {'_id': ObjectId(notification_id)},
            {'$set': {'push_sent_at': datetime.utcnow(), 'push_error': None}}
        )

    @staticmethod
    def mark_push_error(notification_id, error):
        db.notifications.update_one(
            {'_id': ObjectId(notification_id)},
            {'$set': {'push_error': error}}
        )

class ScheduledNotification:
    @staticmethod
    def schedule(user_id, notification_type, title, body, scheduled_for, action_url=None, related_id=None, channels=None):
        row = {
            'user_id': ObjectId(user_id),
            'type': notification_type,
            'title': title,
            'body': body,
            'action_url': action_url,
            'related_id': str(related_id) if related_id else None,
            'channels': _clean_channels(channels),
            'scheduled_for': scheduled_for,
            'sent': False,
            'sent_at': None,
            'created_at': datetime.utcnow()
        }
        result = db.scheduled_notifications.insert_one(row)
        row['_id'] = result.inserted_id
        return row

    @staticmethod
    def cancel_for_related(user_id, related_id):
        """Delete unsent rows for a user and related record"""
        result = db.scheduled_notifications.delete_many({
            'user_id': ObjectId(user_id),
            'related_id': str(related_id),
            'sent': False
        })
        return result.deleted_count

    @staticmethod
    def find_due(now, limit=100):
        return list(db.scheduled_notifications.find({
            'sent': False,
            'scheduled_for': {'$lte': now}
        }).sort('scheduled_for', 1).limit(limit))

    @staticmethod
    def find_pending_for_user(user_id):
        return list(db.scheduled_notifications.find({
            'user_id': ObjectId(user_id),
            'sent': False
        }).sort('scheduled_for', 1))

    @staticmethod
    def exists_since(user_id, notification_type, action_url, since):
        """True when a matching row is already scheduled at or after `since`"""
        return db.scheduled_notifications.find_one({
            'user_id': ObjectId(user_id),
            'type': notification_type,
            'action_url': action_url,
            'scheduled_for': {'$gte': since}
        }) is not None

    @staticmethod
    def mark_sent(scheduled_id):
        db.scheduled_notifications.update_one(
            {'_id': ObjectId(scheduled_id)},
            {'$set': {'sent': True, 'sent_at': datetime.utcnow()}}
        )

class NotificationPreferences:
    @staticmethod
    def get_preferences(user_id):
        """Stored preferences merged over defaults (defaults when none saved)"""
        stored = db.notification_preferences.find_one({'user_id': ObjectId(user_id)})
        prefs = dict(DEFAULT_PREFERENCES)
        prefs['user_id'] = ObjectId(user_id)
        if stored:
            prefs.update(stored)
        return prefs

    @staticmethod
    def update_preferences(user_id, data):
        update_data = {}
        for key, default in DEFAULT_PREFERENCES.items():
            if key not in data or key == 'push_subscription':
                continue
            value = data[key]
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ValueError(f'{key} must be true or false')
            elif isinstance(default, list):
                if not isinstance(value, list) or not all(isinstance(d, int) and d >= 0 for d in value):
                    raise ValueError(f'{key} must be a list of non-negative whole numbers')
                value = sorted(set(value), reverse=True)
            elif key in ('quiet_hours_start', 'quiet_hours_end') and value is not None:
                try:
                    datetime.strptime(str(value)[:5], '%H:%M')
                except ValueError:
                    raise ValueError(f'{key} must be HH:MM')
                value = str(value)[:5]
            elif key == 'timezone':
                try:
                    ZoneInfo(str(value))
                except (ZoneInfoNotFoundError, ValueError):
                    raise ValueError(f'Unknown timezone: {value}')
            update_data[key] = value
        update_data['updated_at'] = datetime.utcnow()
        db.notification_preferences.update_one(
            {'user_id': ObjectId(user_id)},
            {'$set': update_data, '$setOnInsert': {'created_at': datetime.utcnow()}},
            upsert=True
        )
        return NotificationPreferences.get_preferences(user_id)

    @staticmethod
    def save_push_subscription(user_id, subscription):
        if not isinstance(subscription, dict) or not subscription.get('endpoint'):
            raise ValueError('A push subscription with an endpoint is required')
        db.notification_preferences.update_one(
            {'user_id': ObjectId(user_id)},
            {'$set': {'push_subscription': subscription, 'push_enabled': True, 'updated_at': datetime.utcnow()},
             '$setOnInsert': {'created_at': datetime.utcnow()}},
            upsert=True
        )

    @staticmethod
    def remove_push_subscription(user_id, disable=False):
        update = {'push_subscription': None, 'updated_at': datetime.utcnow()}
        if disable:
            update['push_enabled'] = False
        db.notification_preferences.update_one({'user_id': ObjectId(user_id)}, {'$set': update})

    @staticmethod
    def in_quiet_hours(prefs, now):
        """True when `now` falls inside the user's quiet hours

        Naive `now` values are UTC and are converted to the preference
        timezone before the HH:MM comparison. Windows may wrap midnight
        (e.g. 22:00 to 06:00).
        """
        start = prefs.get('quiet_hours_start')
        end = prefs.get('quiet_hours_end')
        if not start or not end or start == end:
            return False
        tz_name = prefs.get('timezone')
        if tz_name:
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            now = now.astimezone(ZoneInfo(tz_name))
        current = now.strftime('%H:%M')
        if start < end:
            return start <= current < end
        return current >= start or current < end

"""Notification helpers used by the farm workflows

Every helper checks the user's preference flag first and never raises:
notification failures are logged so the record that triggered them is
still saved.
"""
import logging
from datetime import datetime, timedelta
from pymongo.errors import PyMongoError
from bson.errors import InvalidId
from sowtracker.models.notification import Notification, ScheduledNotification, NotificationPreferences

logger = logging.getLogger(__name__)

NOTIFICATION_ERRORS = (PyMongoError, InvalidId, ValueError)

def _plural_days(days):
    return f"{days} day{'' if days == 1 else 's'}"

def send_notification(user_id, notification_type, title, message, action_url=None, related_id=None, channels=None):
    """Create an in-app notification, returning it or None on failure"""
    try:
        return Notification.create_notification(user_id, notification_type, title, message,
                                                action_url=action_url, related_id=related_id, channels=channels)
    except NOTIFICATION_ERRORS as e:
        logger.error(f"Error sending {notification_type} notification: {e}")
        return None

def schedule_notification(user_id, notification_type, title, body, scheduled_for, action_url=None, related_id=None, channels=None):
    try:
        return ScheduledNotification.schedule(user_id, notification_type, title, body, scheduled_for,
                                              action_url=action_url, related_id=related_id, channels=channels)
    except NOTIFICATION_ERRORS as e:
        logger.error(f"Error scheduling {notification_type} notification: {e}")
        return None

def cancel_scheduled_notifications(user_id, related_id):
    """Remove unsent reminders for a record; returns the number removed"""
    try:
        return ScheduledNotification.cancel_for_related(user_id, related_id)
    except NOTIFICATION_ERRORS as e:
        logger.error(f"Error cancelling scheduled notifications for {related_id}: {e}")
        return 0

def _schedule_reminders(user_id, pref_flag, days_key, target_date, notification_type, title,
                        message_for_days, action_url, related_id, now=None):
    """Schedule one reminder per configured day before target_date

    Reminders whose time has already passed are skipped.

    Returns:
        Number of reminders scheduled
    """
    try:
        prefs = NotificationPreferences.get_preferences(user_id)
    except NOTIFICATION_ERRORS as e:
        logger.error(f"Error loading notification preferences for {user_id}: {e}")
        return 0
    if not prefs.get(pref_flag):
        return 0

    now = now or datetime.utcnow()
    scheduled = 0
    for days in prefs.get(days_key) or []:
        scheduled_for = target_date - timedelta(days=days)
        if scheduled_for <= now:
            continue
        if schedule_notification(user_id, notification_type, title, message_for_days(days), scheduled_for,
                                 action_url=action_url, related_id=related_id):
            scheduled += 1
    return scheduled

def schedule_farrowing_reminders(farrowing_id, sow_ear_tag, expected_date, user_id, now=None):
    return _schedule_reminders(
        user_id, 'notify_farrowing', 'farrowing_reminder_days', expected_date, 'farrowing',
        f'Farrowing Alert: {sow_ear_tag}',
        lambda days: f'Sow {sow_ear_tag} is expected to farrow in {_plural_days(days)}',
        '/farrowings/active', farrowing_id, now
    )

def schedule_pregnancy_check_reminders(breeding_id, sow_ear_tag, check_date, user_id, now=None):
    return _schedule_reminders(
        user_id, 'notify_pregnancy_check', 'pregnancy_check_reminder_days', check_date, 'pregnancy_check',
        f'Pregnancy Check Due: {sow_ear_tag}',
        lambda days: f'Sow {sow_ear_tag} pregnancy check is due in {_plural_days(days)}',
        '/sows', breeding_id, now
    )

def schedule_weaning_reminders(farrowing_id, sow_ear_tag, weaning_date, user_id, now=None):
    return _schedule_reminders(
        user_id, 'notify_weaning', 'weaning_reminder_days', weaning_date, 'weaning',
        f'Weaning Due: {sow_ear_tag}',
        lambda days: f'Litter from {sow_ear_tag} is due for weaning in {_plural_days(days)}',
        '/farrowings/active', farrowing_id, now
    )

def schedule_vaccination_reminders(health_record_id, animal_ear_tag, vaccination_type, due_date, user_id, now=None):
    return _schedule_reminders(
        user_id, 'notify_vaccination', 'vaccination_reminder_days', due_date, 'vaccination',
        f'Vaccination Due: {animal_ear_tag}',
        lambda days: f'{vaccination_type} vaccination for {animal_ear_tag} is due in {_plural_days(days)}',
        '/health', health_record_id, now
    )

def _preference_enabled(user_id, pref_flag):
    try:
        return bool(NotificationPreferences.get_preferences(user_id).get(pref_flag))
    except NOTIFICATION_ERRORS as e:
        logger.error(f"Error loading notification preferences for {user_id}: {e}")
        return False

def send_breeding_notification(breeding_id, sow_ear_tag, boar_label, user_id):
    if not _preference_enabled(user_id, 'notify_breeding'):
        return None
    return send_notification(user_id, 'breeding', 'New Breeding Recorded',
                             f'Sow {sow_ear_tag} bred with boar {boar_label}',
                             action_url='/sows', related_id=breeding_id)

def send_health_record_notification(health_record_id, animal_ear_tag, record_type, user_id):
    if not _preference_enabled(user_id, 'notify_health_records'):
        return None
    return send_notification(user_id, 'health', f'Health Record: {animal_ear_tag}',
                             f'New {record_type} record added for {animal_ear_tag}',
                             action_url='/health', related_id=health_record_id)

def send_task_reminder(task_id, task_name, due_date, user_id, now=None):
    if not _preference_enabled(user_id, 'notify_tasks'):
        return None
    now = now or datetime.utcnow()
    today = datetime(now.year, now.month, now.day)
    if due_date < today:
        title, message = 'Overdue Task', f'Task "{task_name}" is overdue'
    else:
        title, message = 'Task Reminder', f'Task "{task_name}" is due today'
    return send_notification(user_id, 'task', title, message, action_url='/tasks', related_id=task_id)

def send_compliance_alert(sow_id, sow_ear_tag, message, user_id):
    if not _preference_enabled(user_id, 'notify_compliance'):
        return None
    return send_notification(user_id, 'compliance', f'Compliance Alert: {sow_ear_tag}', message,
                             action_url='/compliance', related_id=sow_id)

def send_matrix_notification(batch_name, sow_count, expected_heat_date, user_id):
    if not _preference_enabled(user_id, 'notify_matrix'):
        return None
    return send_notification(user_id, 'matrix', f'Matrix Batch: {batch_name}',
                             f'{sow_count} sow(s) treated, heat expected {expected_heat_date.strftime("%Y-%m-%d")}',
                             action_url='/health', related_id=batch_name)

def send_transfer_notification(transfer_id, user_id, title, message):
    if not _preference_enabled(user_id, 'notify_transfers'):
        return None
    return send_notification(user_id, 'transfer', title, message, action_url='/transfers', related_id=transfer_id)

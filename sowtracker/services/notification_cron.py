"""Cron processors for scheduled notifications

process_due_notifications turns due scheduled rows into in-app
notifications and fans out push delivery; check_event_notifications scans
every organization for upcoming farm events and schedules reminders.
"""
import logging
from datetime import datetime, timedelta
import requests
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError
from config import Config
from sowtracker import get_org_db
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.notification import Notification, ScheduledNotification, NotificationPreferences
from sowtracker.models.organization import Organization, OrganizationMember
from sowtracker.utils import breeding_dates

logger = logging.getLogger(__name__)

REMINDER_HOUR = 9
CRON_CHANNELS = ['in_app', 'push']

def _push_via_endpoint(notification_id):
    """POST to the send-push endpoint; True when delivery succeeded"""
    headers = {'Content-Type': 'application/json'}
    if Config.CRON_SECRET:
        headers['Authorization'] = f'Bearer {Config.CRON_SECRET}'
    response = requests.post(
        f"{Config.APP_URL}/api/notifications/send-push",
        json={'notificationId': str(notification_id)},
        headers=headers,
        timeout=10
    )
    if response.ok:
        return True
    logger.error(f"[Cron] Push notification failed ({response.status_code}): {response.text[:200]}")
    return False

def _fan_out_push(scheduled, notification, now, results):
    prefs = NotificationPreferences.get_preferences(scheduled['user_id'])
    wants_push = (
        prefs.get('push_enabled')
        and prefs.get('push_subscription')
        and 'push' in (scheduled.get('channels') or [])
    )
    if not wants_push:
        return
    if NotificationPreferences.in_quiet_hours(prefs, now):
        results['pushSkipped'] += 1
        return
    try:
        if _push_via_endpoint(notification['_id']):
            results['pushSent'] += 1
        else:
            results['pushFailed'] += 1
    except requests.RequestException as e:
        results['pushFailed'] += 1
        logger.error(f"[Cron] Error sending push notification: {e}")

def process_due_notifications(now=None, batch_size=None):
    """Materialize due scheduled notifications

    Returns:
        dict with processed, pushSent, pushFailed, pushSkipped and errors
    """
    now = now or datetime.utcnow()
    batch_size = batch_size or Config.NOTIFICATION_BATCH_SIZE
    results = {'processed': 0, 'pushSent': 0, 'pushFailed': 0, 'pushSkipped': 0, 'errors': []}

    logger.info("[Cron] Processing scheduled notifications...")
    scheduled_rows = ScheduledNotification.find_due(now, limit=batch_size)
    if not scheduled_rows:
        logger.info("[Cron] No scheduled notifications to process")
        return results

    logger.info(f"[Cron] Found {len(scheduled_rows)} notifications to process")

    for scheduled in scheduled_rows:
        try:
            notification = Notification.create_notification(
                scheduled['user_id'],
                scheduled['type'],
                scheduled['title'],
                scheduled.get('body'),
                action_url=scheduled.get('action_url'),
                related_id=scheduled.get('related_id'),
                channels=scheduled.get('channels')
            )
        except (PyMongoError, InvalidId, ValueError) as e:
            logger.error(f"[Cron] Error creating notification: {e}")
            results['errors'].append(f"Failed to create notification: {e}")
            continue

        try:
            _fan_out_push(scheduled, notification, now, results)
        except Exception as e:
            # The in-app row exists already; record the failure and still mark the row sent
            logger.exception(f"[Cron] Error delivering push for {scheduled['_id']}")
            results['pushFailed'] += 1
            results['errors'].append(f"Push delivery error: {e}")

        try:
            ScheduledNotification.mark_sent(scheduled['_id'])
        except PyMongoError as e:
            logger.error(f"[Cron] Error marking notification sent: {e}")
            results['errors'].append(f"Error: {e}")
            continue
        results['processed'] += 1

    logger.info(f"[Cron] Processing complete: {results}")
    return results

def _when_label(days):
    return 'today' if days == 0 else 'tomorrow'

def _recipients(organization, record):
    """Users to remind about a record

    The user who recorded it when they are still an active member,
    otherwise the organization's owners.
    """
    created_by = record.get('created_by') if record else None
    if created_by and ObjectId.is_valid(str(created_by)):
        if OrganizationMember.find_membership(organization['_id'], created_by):
            return [ObjectId(str(created_by))]
    return [m['user_id'] for m in OrganizationMember.find_owners(organization['_id'])]

def _schedule_once(organization, record, notification_type, title, body, action_url, scheduled_for, day_start):
    """Schedule for each recipient unless a row exists from the start of today"""
    created = 0
    for user_id in _recipients(organization, record):
        if ScheduledNotification.exists_since(user_id, notification_type, action_url, day_start):
            continue
        ScheduledNotification.schedule(user_id, notification_type, title, body, scheduled_for,
                                       action_url=action_url, related_id=record.get('_id'),
                                       channels=CRON_CHANNELS)
        created += 1
    return created

def _sow_label(sow):
    return sow.get('name') or sow.get('ear_tag') if sow else 'Unknown sow'

def _check_organization(organization, now, results):
    org_db = get_org_db(organization['slug'])
    day_start = datetime(now.year, now.month, now.day)
    scheduled_for = day_start.replace(hour=REMINDER_HOUR)
    sows = {s['_id']: s for s in org_db.sows.find({'deleted_at': None})}

    # Farrowing alerts: expected within 3 days
    for farrowing in org_db.farrowings.find({
        'actual_farrowing_date': None,
        'expected_farrowing_date': {'$gte': day_start, '$lte': day_start + timedelta(days=3)}
    }):
        sow = sows.get(farrowing['sow_id'])
        if not sow:
            continue
        try:
            days = max(breeding_dates.days_until(farrowing['expected_farrowing_date'], now), 0)
            results['farrowingAlerts'] += _schedule_once(
                organization, farrowing, 'farrowing_alert', 'Farrowing Alert',
                f"{_sow_label(sow)} is expected to farrow in {days} day{'' if days == 1 else 's'}. Prepare farrowing pen.",
                f"/breeding/bred-sows?sow={sow['_id']}", scheduled_for, day_start
            )
        except (PyMongoError, InvalidId) as e:
            logger.error(f"[Cron] Error scheduling farrowing alert: {e}")
            results['errors'].append(f"Farrowing alert error: {e}")

    # Weaning reminders: nursing litters reaching weaning age within a day
    for farrowing in org_db.farrowings.find({
        'actual_farrowing_date': {'$ne': None},
        'moved_out_of_farrowing_date': None
    }):
        sow = sows.get(farrowing['sow_id'])
        if not sow:
            continue
        days = breeding_dates.days_until(breeding_dates.expected_weaning_date(farrowing['actual_farrowing_date']), now)
        if not 0 <= days <= 1:
            continue
        try:
            results['weaningReminders'] += _schedule_once(
                organization, farrowing, 'weaning_reminder', 'Weaning Reminder',
                f"Litter from {_sow_label(sow)} is ready for weaning {_when_label(days)}. "
                f"Piglets are {breeding_dates.WEANING_AGE_DAYS} days old.",
                f"/piglets/nursing?sow={sow['_id']}", scheduled_for, day_start
            )
        except (PyMongoError, InvalidId) as e:
            logger.error(f"[Cron] Error scheduling weaning reminder: {e}")
            results['errors'].append(f"Weaning reminder error: {e}")

    # Breeding reminders: open sows a week after their most recent weaning
    latest_weaning = {}
    for farrowing in Farrowing.find_weaned(organization['slug']):
        latest_weaning.setdefault(farrowing['sow_id'], farrowing)
    for sow_id, farrowing in latest_weaning.items():
        sow = sows.get(sow_id)
        if not sow or sow.get('status') != 'active':
            continue
        weaned_on = farrowing['moved_out_of_farrowing_date']
        if org_db.breeding_attempts.find_one({'sow_id': sow_id, 'breeding_date': {'$gte': weaned_on}}):
            continue
        days = breeding_dates.days_until(breeding_dates.expected_heat_after_weaning(weaned_on), now)
        if not 0 <= days <= 1:
            continue
        try:
            results['breedingReminders'] += _schedule_once(
                organization, farrowing, 'breeding_reminder', 'Breeding Reminder',
                f"{_sow_label(sow)} may be in heat {_when_label(days)}. Monitor for breeding.",
                f"/breeding?sow={sow_id}", scheduled_for, day_start
            )
        except (PyMongoError, InvalidId) as e:
            logger.error(f"[Cron] Error scheduling breeding reminder: {e}")
            results['errors'].append(f"Breeding reminder error: {e}")

    # Pregnancy checks: pending breedings reaching the check day within a day
    check_window_start = day_start - timedelta(days=breeding_dates.PREGNANCY_CHECK_DAY)
    for attempt in org_db.breeding_attempts.find({
        'result': 'pending',
        'breeding_date': {'$gte': check_window_start}
    }):
        sow = sows.get(attempt['sow_id'])
        if not sow:
            continue
        days = breeding_dates.days_until(breeding_dates.pregnancy_check_date(attempt['breeding_date']), now)
        if not 0 <= days <= 1:
            continue
        try:
            results['pregnancyCheckReminders'] += _schedule_once(
                organization, attempt, 'pregnancy_check', 'Pregnancy Check Due',
                f"{_sow_label(sow)} is due for pregnancy check {_when_label(days)} "
                f"({breeding_dates.PREGNANCY_CHECK_DAY} days post-breeding).",
                f"/breeding/bred-sows?sow={sow['_id']}", scheduled_for, day_start
            )
        except (PyMongoError, InvalidId) as e:
            logger.error(f"[Cron] Error scheduling pregnancy check reminder: {e}")
            results['errors'].append(f"Pregnancy check error: {e}")

def check_event_notifications(now=None):
    """Schedule reminders for upcoming events across all organizations

    Returns:
        dict with farrowingAlerts, weaningReminders, breedingReminders,
        pregnancyCheckReminders and errors
    """
    now = now or datetime.utcnow()
    results = {
        'farrowingAlerts': 0,
        'weaningReminders': 0,
        'breedingReminders': 0,
        'pregnancyCheckReminders': 0,
        'errors': []
    }
    logger.info("[Cron] Checking for upcoming events that need notifications...")

    for organization in Organization.find_all():
        try:
            _check_organization(organization, now, results)
        except PyMongoError as e:
            logger.error(f"[Cron] Error checking organization {organization.get('slug')}: {e}")
            results['errors'].append(f"{organization.get('slug')}: {e}")

    logger.info(f"[Cron] Event notification check complete: {results}")
    return results

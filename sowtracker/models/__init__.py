import logging
from pymongo.errors import PyMongoError
from sowtracker import db

logger = logging.getLogger(__name__)

def init_db():
    """Initialize master database collections

    Note: Organization databases (sows, boars, piglets, ...) are initialized
    when organizations are created via Organization.initialize_organization_database()
    """
    try:
        db.users.create_index('email', unique=True)

        db.organizations.create_index('slug', unique=True)
        db.organizations.create_index('name')

        db.organization_members.create_index([('organization_id', 1), ('user_id', 1)], unique=True)
        db.organization_members.create_index('user_id')

        db.team_invites.create_index('token', unique=True)
        db.team_invites.create_index('organization_id')

        db.notifications.create_index([('user_id', 1), ('created_at', -1)])
        db.scheduled_notifications.create_index([('sent', 1), ('scheduled_for', 1)])
        db.scheduled_notifications.create_index([('user_id', 1), ('related_id', 1)])
        db.notification_preferences.create_index('user_id', unique=True)

        db.transfer_requests.create_index('to_user_email')
        db.transfer_requests.create_index('from_user_id')
        db.transfer_requests.create_index([('animal_id', 1), ('status', 1)])

        db.feedback.create_index([('status', 1), ('created_at', -1)])
        db.feedback.create_index('user_id')

        logger.info("Master database initialized successfully")
    except PyMongoError as e:
        # Index creation is best effort; the app can still serve requests
        logger.error(f"Error initializing master database indexes: {e}")

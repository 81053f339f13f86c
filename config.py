import os
from dotenv import load_dotenv

load_dotenv()

# Get MongoDB URI at module level to avoid issues during class definition
def _get_mongodb_uri():
    """Get MongoDB URI with proper error handling"""
    _mongodb_uri = os.environ.get('MONGODB_URI')
    if not _mongodb_uri:
        # Vercel sets VERCEL / VERCEL_ENV; a local fallback would silently point production at nothing
        if os.environ.get('VERCEL') or os.environ.get('VERCEL_ENV'):
            raise ValueError(
                "MONGODB_URI environment variable is required but not set. "
                "Please set it in your Vercel project settings."
            )
        _mongodb_uri = 'mongodb://localhost:27017/'
    return _mongodb_uri

def _get_int(name, default):
    value = os.environ.get(name)
    try:
        return int(value) if value else default
    except ValueError:
        return default

class Config:
    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # MongoDB settings
    try:
        MONGODB_URI = _get_mongodb_uri()
    except ValueError:
        # Raised again on first connection attempt
        MONGODB_URI = None

    MONGODB_DB = os.environ.get('MONGODB_DB') or 'sow_tracker'

    # Session settings
    SESSION_PERMANENT = False

    # Application settings
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max upload (CSV imports)
    APP_URL = (os.environ.get('APP_URL') or 'http://localhost:5000').rstrip('/')

    # Cron / push settings
    CRON_SECRET = os.environ.get('CRON_SECRET')
    VAPID_PUBLIC_KEY = os.environ.get('VAPID_PUBLIC_KEY')
    VAPID_PRIVATE_KEY = os.environ.get('VAPID_PRIVATE_KEY')
    VAPID_EMAIL = os.environ.get('VAPID_EMAIL') or 'noreply@sowtracker.com'
    NOTIFICATION_BATCH_SIZE = _get_int('NOTIFICATION_BATCH_SIZE', 100)
    NOTIFICATION_WORKER_INTERVAL = _get_int('NOTIFICATION_WORKER_INTERVAL', 300)

    # Team invites
    INVITE_EXPIRY_DAYS = _get_int('INVITE_EXPIRY_DAYS', 7)

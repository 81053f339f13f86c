import logging
from flask import Flask, jsonify
from flask_cors import CORS
from pymongo import MongoClient
from bson.errors import InvalidId
from config import Config
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

logger = logging.getLogger(__name__)

# Connections are created lazily so serverless cold starts don't fail at import time
_mongodb_client = None
_db_instance = None
_org_db_cache = {}  # Cache for organization-specific databases

def _clean_mongodb_uri(uri):
    """Clean MongoDB URI by removing SSL/TLS parameters for mongodb+srv:// connections

    For mongodb+srv://, PyMongo automatically handles TLS, so any ssl= or tls=
    parameters in the URI can cause warnings. This function removes them.
    """
    if not uri.startswith('mongodb+srv://'):
        return uri

    parsed = urlparse(uri)
    query_params = parse_qs(parsed.query, keep_blank_values=True)

    cleaned_params = {}
    for key, value_list in query_params.items():
        if key.lower() not in ['ssl', 'tls']:
            cleaned_params[key] = value_list

    cleaned_query = urlencode(cleaned_params, doseq=True) if cleaned_params else ''
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        cleaned_query,
        parsed.fragment
    ))

def _get_mongodb_client():
    """Get or create MongoDB client"""
    global _mongodb_client

    if _mongodb_client is not None:
        return _mongodb_client

    if Config.MONGODB_URI is None:
        raise ValueError(
            "MONGODB_URI environment variable is required but not set. "
            "Please set it in your Vercel project settings."
        )

    cleaned_uri = _clean_mongodb_uri(Config.MONGODB_URI)

    client_options = {
        'serverSelectionTimeoutMS': 30000,
        'connectTimeoutMS': 30000,
        'socketTimeoutMS': 30000,
        'retryWrites': True,
        'retryReads': True,
    }

    if cleaned_uri.startswith('mongodb+srv://'):
        logger.info("Using automatic TLS for mongodb+srv:// connection")
    else:
        # Local MongoDB typically doesn't use TLS
        is_localhost = 'localhost' in cleaned_uri.lower() or '127.0.0.1' in cleaned_uri.lower()
        if not is_localhost and 'ssl=' not in cleaned_uri.lower() and 'tls=' not in cleaned_uri.lower():
            client_options['tls'] = True
            client_options['tlsAllowInvalidCertificates'] = False
            client_options['tlsAllowInvalidHostnames'] = False
            logger.info("TLS enabled for remote MongoDB connection")

    try:
        _mongodb_client = MongoClient(cleaned_uri, **client_options)
    except Exception as e:
        logger.exception(f"Error creating MongoDB client: {e}")
        raise
    logger.info("MongoDB client created")
    return _mongodb_client

def get_db():
    """Get master MongoDB database (users, organizations, memberships, notifications)"""
    global _db_instance

    if _db_instance is not None:
        return _db_instance

    client = _get_mongodb_client()
    _db_instance = client[Config.MONGODB_DB]
    return _db_instance

def get_org_db(org_code):
    """Get organization-specific MongoDB database

    Args:
        org_code: The organization slug (normalized to lowercase)

    Returns:
        Database instance holding the organization's farm records
    """
    if not org_code:
        raise ValueError("org_code is required")

    db_name = f"org_{org_code.lower().strip()}"

    if db_name in _org_db_cache:
        return _org_db_cache[db_name]

    client = _get_mongodb_client()
    org_db = client[db_name]
    _org_db_cache[db_name] = org_db
    return org_db

def reset_connections(client=None):
    """Drop cached connections, optionally installing a replacement client"""
    global _mongodb_client, _db_instance
    _mongodb_client = client
    _db_instance = None
    _org_db_cache.clear()

class LazyDB:
    """Lazy proxy for the master database that connects on first access"""
    def __getattr__(self, name):
        return getattr(get_db(), name)

    def __getitem__(self, key):
        return get_db()[key]

db = LazyDB()

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    def initialize_database_once():
        if not getattr(app, '_db_initialized', False):
            from .models import init_db
            get_db()
            init_db()
            app._db_initialized = True

    app.before_request(initialize_database_once)

    from .routes.auth_routes import auth_bp
    from .routes.organization_routes import organization_bp
    from .routes.herd_routes import herd_bp
    from .routes.breeding_routes import breeding_bp
    from .routes.housing_routes import housing_bp
    from .routes.health_routes import health_bp
    from .routes.finance_routes import finance_bp
    from .routes.schedule_routes import schedule_bp
    from .routes.compliance_routes import compliance_bp
    from .routes.transfer_routes import transfer_bp
    from .routes.notification_routes import notification_bp
    from .routes.cron_routes import cron_bp
    from .routes.feedback_routes import feedback_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(organization_bp)
    app.register_blueprint(herd_bp)
    app.register_blueprint(breeding_bp)
    app.register_blueprint(housing_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(schedule_bp)
    app.register_blueprint(compliance_bp)
    app.register_blueprint(transfer_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(feedback_bp)

    @app.route('/push-sw.js')
    def push_service_worker():
        """Service worker must be served from the root scope"""
        response = app.send_static_file('push-sw.js')
        response.headers['Service-Worker-Allowed'] = '/'
        return response

    @app.errorhandler(InvalidId)
    def handle_invalid_id(e):
        return jsonify({'success': False, 'message': 'Record not found.'}), 404

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({'success': False, 'message': 'Not found.'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({'success': False, 'message': 'Method not allowed.'}), 405

    @app.errorhandler(500)
    def handle_server_error(e):
        return jsonify({'success': False, 'message': 'Internal server error.'}), 500

    return app

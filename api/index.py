"""
Vercel serverless function entry point for the Sow Tracker API.
Vercel expects a module-level WSGI 'app'.
"""

from flask import Flask, jsonify

app = None

try:
    from sowtracker import create_app

    # Indexes are created on the first request (see create_app) so cold starts
    # don't fail when MongoDB is briefly unreachable
    app = create_app()

    if not isinstance(app, Flask):
        raise TypeError(f"create_app() returned {type(app)}, expected Flask instance")

except Exception as e:
    import traceback
    print(f"ERROR: Failed to create Flask app: {e}")
    traceback.print_exc()

    startup_error = e
    app = Flask(__name__)

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def error_handler(path):
        return jsonify({
            'success': False,
            'message': str(startup_error),
            'type': type(startup_error).__name__
        }), 500

if app is None or not isinstance(app, Flask):
    raise RuntimeError(f"Failed to initialize Flask app. Got: {type(app)}")

__all__ = ['app']

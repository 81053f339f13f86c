import logging
from flask import jsonify
from bson.errors import InvalidId

logger = logging.getLogger(__name__)

def error_response(e):
    """Map a model/service exception onto the JSON error envelope

    ValueError is a validation failure (400), LookupError and InvalidId a
    missing record (404), PermissionError a forbidden action (403). Anything
    else is logged and reported as 500.
    """
    if isinstance(e, InvalidId):
        return jsonify({'success': False, 'message': 'Record not found.'}), 404
    if isinstance(e, ValueError):
        return jsonify({'success': False, 'message': str(e)}), 400
    if isinstance(e, LookupError):
        return jsonify({'success': False, 'message': str(e).strip("'")}), 404
    if isinstance(e, PermissionError):
        return jsonify({'success': False, 'message': str(e)}), 403
    logger.exception("Unhandled error while processing request")
    return jsonify({'success': False, 'message': f'Error processing request: {str(e)}'}), 500

def not_found(message):
    return jsonify({'success': False, 'message': message}), 404

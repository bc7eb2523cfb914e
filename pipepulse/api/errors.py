"""Error envelope and Flask error handlers for the PipePulse API."""

from flask import jsonify
from typing import Dict, Any, Optional


# code -> (HTTP status, default message)
ERROR_CODES = {
    'MISSING_AUTH': (401, 'Missing X-Gitlab-Token header'),
    'INVALID_KEY': (403, 'Invalid webhook token'),
    'INVALID_PAYLOAD': (400, 'Webhook payload is missing required fields'),
    'INVALID_REQUEST': (400, 'Invalid request payload'),
    'NOT_FOUND': (404, 'Resource not found'),
    'METHOD_NOT_ALLOWED': (405, 'Method not allowed'),
    'PAYLOAD_TOO_LARGE': (413, 'Webhook payload too large'),
    'RATE_LIMITED': (429, 'Rate limit exceeded'),
    'CONFIG_ERROR': (500, 'Webhook token not configured'),
    'INTERNAL_ERROR': (500, 'Internal server error'),
}


def error_response(
    code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status_code: Optional[int] = None
) -> tuple:
    """Build the ``{"success": false, "error": {...}}`` envelope.

    Args:
        code: Error code, a key of ERROR_CODES
        message: Human-readable message (code default if None)
        details: Optional structured details
        status_code: HTTP status (code default if None)

    Returns:
        Tuple of (json response, status code)
    """
    default_status, default_message = ERROR_CODES.get(code, (400, code))

    error = {
        'code': code,
        'message': message or default_message,
    }
    if details:
        error['details'] = details

    return jsonify({'success': False, 'error': error}), status_code or default_status


def register_error_handlers(app):
    """Answer Flask/werkzeug HTTP errors with the JSON envelope."""

    @app.errorhandler(400)
    def bad_request(error):
        return error_response('INVALID_REQUEST', details={'description': str(error.description)})

    @app.errorhandler(404)
    def not_found(error):
        return error_response('NOT_FOUND')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('METHOD_NOT_ALLOWED')

    @app.errorhandler(413)
    def payload_too_large(error):
        return error_response('PAYLOAD_TOO_LARGE')

    @app.errorhandler(429)
    def rate_limited(error):
        # flask-limiter puts the exceeded limit in the description
        return error_response('RATE_LIMITED', details={'limit': str(error.description)})

    @app.errorhandler(500)
    def internal_error(error):
        return error_response('INTERNAL_ERROR')

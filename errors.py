import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from models import db

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error that is rendered to the client as ``{"error": message, ...}``."""

    status_code = 400

    def __init__(self, message, status_code=None, **payload):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        data = dict(self.payload)
        data['error'] = self.message
        return data


class ValidationError(APIError):
    status_code = 400


class Conflict(APIError):
    status_code = 400


class Unauthorized(APIError):
    status_code = 401


class Forbidden(APIError):
    status_code = 403


class NotFound(APIError):
    status_code = 404


class PaymentGatewayError(APIError):
    status_code = 502


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled error')
        db.session.rollback()
        return jsonify({'error': str(error) or 'Internal server error'}), 500

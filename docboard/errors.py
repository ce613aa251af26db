"""
API errors

Every failure that reaches a caller is one of four kinds:
- ValidationError: bad input shape, wrong type/extension, oversize file, malformed id
- NotFoundError: an id resolved to no document
- ServiceUnavailable: byte store or PDF parser failed (cause attached)
- InternalError: persistence failure or anything unexpected
"""
import logging
from typing import Any, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong. Please try again."


class DocboardError(Exception):
    error_type = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self, expose_details: bool = True) -> dict:
        return {
            'type': self.error_type,
            'message': self.message,
            'details': self.details if expose_details else None,
        }


class ValidationError(DocboardError):
    error_type = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DocboardError):
    error_type = "NOT_FOUND"
    status_code = 404

    @classmethod
    def for_resource(cls, resource: str, resource_id: Optional[str] = None) -> "NotFoundError":
        if resource_id:
            return cls(f"{resource} with ID {resource_id} not found")
        return cls(f"{resource} not found")


class ServiceUnavailable(DocboardError):
    error_type = "SERVICE_UNAVAILABLE"
    status_code = 503

    @classmethod
    def for_operation(cls, service: str, operation: str, cause: BaseException) -> "ServiceUnavailable":
        return cls(f"{service} service failed during {operation}", details={'reason': str(cause)}, cause=cause)


class ExtractionError(ServiceUnavailable):
    """The extraction pipeline could not read the document at all."""


class InternalError(DocboardError):
    error_type = "INTERNAL_SERVER_ERROR"
    status_code = 500


def _is_sanitized(error: DocboardError) -> bool:
    return isinstance(error, (ServiceUnavailable, InternalError))


def error_response(error: DocboardError, debug: bool = False):
    if _is_sanitized(error):
        logger.error("%s: %s (details=%r)", error.error_type, error.message, error.details,
                     exc_info=error.cause or error)
        if not debug:
            body = {'type': error.error_type, 'message': GENERIC_MESSAGE, 'details': None}
            return jsonify({'ok': False, 'error': body}), error.status_code
    return jsonify({'ok': False, 'error': error.to_dict()}), error.status_code


def register_error_handlers(app):
    """Render DocboardError (and stray exceptions) as JSON."""

    @app.errorhandler(DocboardError)
    def handle_docboard_error(error):
        return error_response(error, debug=app.debug)

    @app.errorhandler(413)
    def handle_too_large(error):
        limit = app.config.get('MAX_UPLOAD_BYTES')
        err = ValidationError("File too large", details={
            'maxSize': limit,
            'reason': "Maximum file size is 10MB",
        })
        return error_response(err)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return jsonify({'ok': False, 'error': {
                'type': error.name.upper().replace(' ', '_'),
                'message': error.description,
                'details': None,
            }}), error.code
        err = InternalError("Internal server error", details={'reason': str(error)}, cause=error)
        return error_response(err, debug=app.debug)

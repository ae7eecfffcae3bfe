from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError


class ApiError(Exception):
    """
    Generic business-rule error.

    Subclasses name a rejection the caller can explain to the user; the
    class name travels in ``payload["code"]``.
    """
    default_status = 400

    def __init__(self, message, status_code=None, errors=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status
        self.errors = errors or {}
        self.payload = payload or {}
        if type(self) is not ApiError:
            self.payload.setdefault("code", type(self).__name__)


class NotFound(ApiError):
    default_status = 404


class InvalidTransition(ApiError):
    """Wrong state, wrong role or stale precondition."""
    default_status = 409


# Condition report gate
class DuplicateReport(ApiError):
    default_status = 409


class PrematureReturn(ApiError):
    default_status = 409


class IncompleteReport(ApiError):
    default_status = 400


# Escrow ledger
class ReleaseBlocked(ApiError):
    default_status = 409


class SettlementExceedsEscrow(ApiError):
    default_status = 400


class AlreadyHeld(ApiError):
    default_status = 409


# Extension negotiator
class ExtensionAlreadyPending(ApiError):
    default_status = 409


class InvalidExtensionDate(ApiError):
    default_status = 400


# Dispute resolver
class AlreadyResolved(ApiError):
    default_status = 409


# Availability store
class DatesUnavailable(ApiError):
    default_status = 409


def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        response = {
            "success": False,
            "message": err.message,
        }
        if err.errors:
            response["errors"] = err.errors
        if getattr(err, "payload", None):
            response["payload"] = err.payload

        return jsonify(response), err.status_code

    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err: ValidationError):
        response = {
            "success": False,
            "message": "Invalid data",
            "errors": err.messages if hasattr(err, "messages") else str(err),
        }
        return jsonify(response), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        response = {
            "success": False,
            "message": err.description or "HTTP error",
        }
        return jsonify(response), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        app.logger.exception(err)

        response = {
            "success": False,
            "message": "Internal server error",
        }
        return jsonify(response), 500

# presence_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from presence_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Base for every error a handler may surface to a scanning agent or client."""
    code = "internal"
    status_code = 500

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.payload = payload


class Unauthenticated(APIError):
    code = "unauthenticated"
    status_code = 401


class NotFound(APIError):
    code = "not-found"
    status_code = 404


class InvalidArgument(APIError):
    code = "invalid-argument"
    status_code = 400


class PermissionDenied(APIError):
    code = "permission-denied"
    status_code = 403


class FailedPrecondition(APIError):
    code = "failed-precondition"
    status_code = 412


class AlreadyExists(APIError):
    code = "already-exists"
    status_code = 409


class Internal(APIError):
    code = "internal"
    status_code = 500


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    if e.status_code >= 500:
        current_app.logger.error("internal error: %s", e.message)
    return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return fail(message="Conflict / integrity error", status=409, code="already-exists",
                detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500, code="internal")


def register_jwt_handlers(jwt):
    """Render Flask-JWT-Extended rejections in the API envelope."""

    @jwt.unauthorized_loader
    def _missing(reason):
        return fail(reason or "Login required", status=401, code="unauthenticated")

    @jwt.invalid_token_loader
    def _invalid(reason):
        return fail(reason or "Invalid token", status=401, code="unauthenticated")

    @jwt.expired_token_loader
    def _expired(_header, _payload):
        return fail("Session expired", status=401, code="unauthenticated")

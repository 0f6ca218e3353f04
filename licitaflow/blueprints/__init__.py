"""
Licitaflow — Bidding Process Tracker
Blueprint registry helpers.

Every API blueprint calls ``init_api_blueprint(bp)`` once, which

    - rejects anonymous requests with 401 (``g.current_user`` is set by
      the JWT middleware), and
    - maps the workflow exception hierarchy to HTTP responses:

        ValidationError     → 422
        AuthorizationError  → 403
        NotFoundError       → 404
        StateError          → 409
        ConflictError       → 409
        SQLAlchemyError     → 500 (generic message, details logged)
"""

import logging

from flask import g, request
from sqlalchemy.exc import SQLAlchemyError

from licitaflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from licitaflow.models import db
from licitaflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    """Acting user for the current request (guaranteed by ``_require_login``)."""
    return g.current_user


def request_json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def init_api_blueprint(bp):
    @bp.before_request
    def _require_login():
        if request.method == "OPTIONS":
            return None
        if getattr(g, "current_user", None) is None:
            message = getattr(g, "jwt_error", None) or "Authentication required"
            return api_error(E.UNAUTHORIZED, message)
        return None

    @bp.errorhandler(ValidationError)
    def _handle_validation(error):
        return api_error(E.VALIDATION_INVALID, error.message, details=error.details)

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error):
        return api_error(E.FORBIDDEN, error.message, details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, error.message)

    @bp.errorhandler(StateError)
    def _handle_state(error):
        return api_error(E.CONFLICT_STATE, error.message, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, error.message, details=error.details)

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error):
        db.session.rollback()
        logger.exception("Database error endpoint=%s", request.endpoint)
        return api_error(E.DATABASE, "Database unavailable, please try again")

    return bp

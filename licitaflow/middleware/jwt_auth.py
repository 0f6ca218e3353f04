"""
JWT Auth Middleware — parses the bearer token and loads the acting user.

    Authorization: Bearer <token>  →  g.current_user (User) | None

A missing, expired or invalid token simply leaves ``g.current_user`` as
None; API blueprints decide whether that is a 401. Deactivated users are
treated as anonymous even with a still-valid token.
"""

import logging

import jwt as pyjwt
from flask import g, request

from licitaflow.models import db
from licitaflow.models.auth import User
from licitaflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
            return
        except pyjwt.InvalidTokenError:
            g.jwt_error = "Invalid token"
            return

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            g.jwt_error = "Invalid token"
            return

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            logger.info("Token for unknown or inactive user user_id=%s", user_id)
            g.jwt_error = "User inactive"
            return
        g.current_user = user

"""
Auth Blueprint — password login and current-user lookup.

Endpoints:
    POST /api/v1/auth/login   {username, password} → access token + user
    GET  /api/v1/auth/me      → current user
"""

import logging

from flask import Blueprint, g, jsonify

from licitaflow.blueprints import request_json
from licitaflow.services.jwt_service import generate_access_token
from licitaflow.services.user_service import AuthenticationError, authenticate_user
from licitaflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request_json()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return api_error(
            E.VALIDATION_REQUIRED, "username and password are required",
            details={"username": "required", "password": "required"},
        )

    try:
        user = authenticate_user(username, password)
    except AuthenticationError as e:
        logger.info("Login failed username=%s status=%s", username, e.status_code)
        code = E.UNAUTHORIZED if e.status_code == 401 else E.FORBIDDEN
        return api_error(code, e.message, status=e.status_code)

    body = generate_access_token(user)
    body["user"] = user.to_dict()
    logger.info("Login ok user_id=%s", user.id)
    return jsonify(body), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    user = getattr(g, "current_user", None)
    if user is None:
        return api_error(E.UNAUTHORIZED, getattr(g, "jwt_error", None) or "Authentication required")
    return jsonify(user.to_dict()), 200

"""
Reference data Blueprint — departments, modalities, step templates,
resource sources and users.

    GET/POST  /api/v1/departments
    GET/POST  /api/v1/modalities
    GET/PUT   /api/v1/modalities/<id>/steps
    GET/POST  /api/v1/sources
    GET/POST  /api/v1/users
    PATCH     /api/v1/users/<id>

Writes are admin only (enforced in the services).
"""

import logging

from flask import Blueprint, jsonify, request

import licitaflow.services.reference_service as reference
import licitaflow.services.user_service as users
from licitaflow.blueprints import current_user, init_api_blueprint, request_json

logger = logging.getLogger(__name__)

reference_bp = init_api_blueprint(Blueprint("reference", __name__, url_prefix="/api/v1"))


# ── Departments ──────────────────────────────────────────────────────────────


@reference_bp.route("/departments", methods=["GET"])
def list_departments():
    return jsonify([d.to_dict() for d in reference.list_departments()]), 200


@reference_bp.route("/departments", methods=["POST"])
def create_department():
    dept = reference.create_department(request_json(), current_user())
    return jsonify(dept.to_dict()), 201


# ── Modalities ───────────────────────────────────────────────────────────────


@reference_bp.route("/modalities", methods=["GET"])
def list_modalities():
    return jsonify([m.to_dict() for m in reference.list_modalities()]), 200


@reference_bp.route("/modalities", methods=["POST"])
def create_modality():
    modality = reference.create_modality(request_json(), current_user())
    return jsonify(modality.to_dict()), 201


@reference_bp.route("/modalities/<int:modality_id>/steps", methods=["GET"])
def get_step_templates(modality_id):
    return jsonify([t.to_dict() for t in reference.get_step_templates(modality_id)]), 200


@reference_bp.route("/modalities/<int:modality_id>/steps", methods=["PUT"])
def replace_step_templates(modality_id):
    """Body: {steps: [{step_name, department_id, phase?, time_limit_days?}, ...]}"""
    steps = request_json().get("steps")
    rows = reference.replace_step_templates(modality_id, steps, current_user())
    return jsonify([t.to_dict() for t in rows]), 200


# ── Resource sources ─────────────────────────────────────────────────────────


@reference_bp.route("/sources", methods=["GET"])
def list_sources():
    return jsonify([s.to_dict() for s in reference.list_sources()]), 200


@reference_bp.route("/sources", methods=["POST"])
def create_source():
    source = reference.create_source(request_json(), current_user())
    return jsonify(source.to_dict()), 201


# ── Users ────────────────────────────────────────────────────────────────────


@reference_bp.route("/users", methods=["GET"])
def list_users():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    return jsonify([u.to_dict() for u in users.list_users(include_inactive)]), 200


@reference_bp.route("/users", methods=["POST"])
def create_user():
    user = users.create_user(request_json(), current_user())
    return jsonify(user.to_dict()), 201


@reference_bp.route("/users/<int:user_id>", methods=["PATCH"])
def update_user(user_id):
    user = users.update_user(user_id, request_json(), current_user())
    return jsonify(user.to_dict()), 200

"""
Analytics Blueprint — dashboard aggregates as JSON.

    GET /api/v1/analytics/statistics
    GET /api/v1/analytics/by-month?year=
    GET /api/v1/analytics/by-source
    GET /api/v1/analytics/by-responsible
    GET /api/v1/analytics/by-department
    GET /api/v1/analytics/monthly-goal
    PUT /api/v1/analytics/monthly-goal          body {"value": int}, admin only

The aggregates accept the process listing filters (pbdoc_number, modality_id,
source_id, responsible_id, status, current_department_id, priority)
and count only processes visible to the caller.
"""

from flask import Blueprint, jsonify, request

import licitaflow.services.analytics_service as analytics
from licitaflow.blueprints import current_user, init_api_blueprint, request_json
from licitaflow.services.process_service import ProcessFilter

analytics_bp = init_api_blueprint(Blueprint("analytics", __name__, url_prefix="/api/v1/analytics"))


@analytics_bp.route("/statistics", methods=["GET"])
def statistics():
    return jsonify(analytics.statistics(current_user(), ProcessFilter.from_args(request.args))), 200


@analytics_bp.route("/by-month", methods=["GET"])
def by_month():
    year = request.args.get("year", type=int)
    return jsonify(
        analytics.by_month(current_user(), ProcessFilter.from_args(request.args), year=year)
    ), 200


@analytics_bp.route("/by-source", methods=["GET"])
def by_source():
    return jsonify(analytics.by_source(current_user(), ProcessFilter.from_args(request.args))), 200


@analytics_bp.route("/by-responsible", methods=["GET"])
def by_responsible():
    return jsonify(analytics.by_responsible(current_user(), ProcessFilter.from_args(request.args))), 200


@analytics_bp.route("/by-department", methods=["GET"])
def by_department():
    return jsonify(analytics.by_department(current_user(), ProcessFilter.from_args(request.args))), 200


@analytics_bp.route("/monthly-goal", methods=["GET"])
def get_monthly_goal():
    return jsonify({"value": analytics.get_monthly_goal()}), 200


@analytics_bp.route("/monthly-goal", methods=["PUT"])
def set_monthly_goal():
    data = request_json()
    return jsonify({"value": analytics.set_monthly_goal(data.get("value"), current_user())}), 200

"""
Process Blueprint — bidding processes, their steps and participants.

Endpoint groups:
  Processes       GET/POST          /api/v1/processes
                  GET/PATCH/DELETE  /api/v1/processes/<id>
  Trash           GET               /api/v1/processes/trash
                  POST              /api/v1/processes/<id>/restore
                  DELETE            /api/v1/processes/<id>/permanent
  Routing         POST              /api/v1/processes/<id>/transfer
                  POST              /api/v1/processes/<id>/return
  Steps           GET/POST          /api/v1/processes/<id>/steps
                  POST              /api/v1/processes/<id>/steps/<step_id>/complete
                  GET               /api/v1/steps/rejected
  Participants    GET/POST          /api/v1/processes/<id>/participants
                  DELETE            /api/v1/processes/<id>/participants/<participant_id>

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import licitaflow.services.participation_service as participation
import licitaflow.services.process_service as processes
import licitaflow.services.workflow_service as workflow
from licitaflow.blueprints import current_user, init_api_blueprint, request_json
from licitaflow.core.exceptions import NotFoundError, ValidationError
from licitaflow.models.process import ProcessStep
from licitaflow.utils.helpers import parse_datetime_input

logger = logging.getLogger(__name__)

process_bp = init_api_blueprint(Blueprint("process", __name__, url_prefix="/api/v1"))


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ═════════════════════════════════════════════════════════════════════════
# Processes
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/processes", methods=["GET"])
def list_processes():
    """List visible processes.

    Query params: pbdoc_number, modality_id, source_id, responsible_id,
    status, current_department_id, priority, include_deleted (admin),
    limit (default 200, max 1000), offset.
    """
    filters = processes.ProcessFilter.from_args(request.args)
    items, total = processes.list_visible_processes_page(current_user(), filters)
    return jsonify({
        "items": [p.to_dict() for p in items],
        "total": total,
        "limit": filters.limit,
        "offset": filters.offset,
    }), 200


@process_bp.route("/processes", methods=["POST"])
def create_process():
    process = processes.create_process(request_json(), current_user())
    return jsonify(process.to_dict(include_steps=True)), 201


@process_bp.route("/processes/trash", methods=["GET"])
def list_trash():
    items = processes.list_deleted_processes(current_user())
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)}), 200


@process_bp.route("/processes/<int:process_id>", methods=["GET"])
def get_process(process_id):
    process = processes.get_visible_process(process_id, current_user())
    return jsonify(process.to_dict(include_steps=True)), 200


@process_bp.route("/processes/<int:process_id>", methods=["PATCH"])
def update_process(process_id):
    process = processes.update_process(process_id, request_json(), current_user())
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<int:process_id>", methods=["DELETE"])
def delete_process(process_id):
    """Move to the trash (soft delete)."""
    processes.soft_delete_process(process_id, current_user())
    return jsonify({"deleted": True, "id": process_id}), 200


@process_bp.route("/processes/<int:process_id>/restore", methods=["POST"])
def restore_process(process_id):
    process = processes.restore_process(process_id, current_user())
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<int:process_id>/permanent", methods=["DELETE"])
def permanently_delete_process(process_id):
    processes.permanently_delete_process(process_id, current_user())
    return jsonify({"deleted": True, "permanent": True, "id": process_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Routing
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/processes/<int:process_id>/transfer", methods=["POST"])
def transfer_process(process_id):
    """Body: {department_id}"""
    data = request_json()
    process = participation.transfer_process(process_id, data.get("department_id"), current_user())
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<int:process_id>/return", methods=["POST"])
def return_process(process_id):
    """Body: {comment, department_id? (admin only)}"""
    data = request_json()
    process = workflow.return_process(
        process_id,
        data.get("comment"),
        current_user(),
        target_department_id=data.get("department_id"),
    )
    return jsonify(process.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Steps
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/processes/<int:process_id>/steps", methods=["GET"])
def list_steps(process_id):
    steps = workflow.list_steps(process_id, current_user())
    return jsonify([s.to_dict() for s in steps]), 200


@process_bp.route("/processes/<int:process_id>/steps", methods=["POST"])
def add_step(process_id):
    """Body: {step_name, department_id, phase?, due_date?}"""
    data = request_json()
    try:
        due_date = parse_datetime_input(data.get("due_date"))
    except ValueError as e:
        raise ValidationError(str(e), details={"due_date": "invalid"})
    step = workflow.add_step(
        process_id,
        data.get("step_name"),
        data.get("department_id"),
        due_date=due_date,
        phase=data.get("phase"),
        acting_user=current_user(),
    )
    return jsonify(step.to_dict()), 201


@process_bp.route("/processes/<int:process_id>/steps/<int:step_id>/complete", methods=["POST"])
def complete_step(process_id, step_id):
    """Body: {rejected?: bool, observations?: str}"""
    step = ProcessStep.query.filter_by(id=step_id, process_id=process_id).first()
    if step is None:
        raise NotFoundError(resource="ProcessStep", resource_id=step_id)
    data = request_json()
    process = workflow.complete_step(
        step_id,
        current_user(),
        rejected=_truthy(data.get("rejected", False)),
        observations=data.get("observations"),
    )
    return jsonify(process.to_dict(include_steps=True)), 200


@process_bp.route("/steps/rejected", methods=["GET"])
def list_rejected_steps():
    steps = workflow.list_rejected_steps(current_user())
    items = []
    for step in steps:
        item = step.to_dict()
        item["pbdoc_number"] = step.process.pbdoc_number
        items.append(item)
    return jsonify({"items": items, "total": len(items)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Participants
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/processes/<int:process_id>/participants", methods=["GET"])
def list_participants(process_id):
    include_inactive = _truthy(request.args.get("include_inactive", "false"))
    rows = participation.list_participants(process_id, current_user(), include_inactive)
    return jsonify([p.to_dict() for p in rows]), 200


@process_bp.route("/processes/<int:process_id>/participants", methods=["POST"])
def add_participant(process_id):
    """Body: {user_id? | department_id?, role}"""
    row = participation.add_participant(process_id, request_json(), current_user())
    return jsonify(row.to_dict()), 201


@process_bp.route("/processes/<int:process_id>/participants/<int:participant_id>", methods=["DELETE"])
def remove_participant(process_id, participant_id):
    participation.remove_participant(process_id, participant_id, current_user())
    return jsonify({"deactivated": True, "id": participant_id}), 200

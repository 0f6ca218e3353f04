"""
Notification Blueprint — in-app notifications for the current user.

    GET  /api/v1/notifications              ?unread_only=&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all

A user sees notifications addressed to them plus broadcasts, restricted
to processes they can currently see.
"""

from flask import Blueprint, jsonify, request

from licitaflow.blueprints import current_user, init_api_blueprint
from licitaflow.core.exceptions import NotFoundError
from licitaflow.models.process import Process
from licitaflow.services.notification import NotificationService
from licitaflow.services.participation_service import visible_processes_query
from licitaflow.utils.helpers import parse_int_arg

notification_bp = init_api_blueprint(Blueprint("notification", __name__, url_prefix="/api/v1"))


def _visible_process_ids(user):
    if user.is_admin:
        return None
    return [pid for (pid,) in visible_processes_query(user).with_entities(Process.id).all()]


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    user = current_user()
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = min(max(parse_int_arg(request.args.get("limit"), 50), 1), 200)
    offset = max(parse_int_arg(request.args.get("offset"), 0), 0)
    items, total = NotificationService.list_for_user(
        user, _visible_process_ids(user), unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total}), 200


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    user = current_user()
    return jsonify({"unread_count": NotificationService.unread_count(user, _visible_process_ids(user))}), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    user = current_user()
    notif = NotificationService.mark_read(notification_id, user, _visible_process_ids(user))
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    user = current_user()
    count = NotificationService.mark_all_read(user, _visible_process_ids(user))
    return jsonify({"marked": count}), 200

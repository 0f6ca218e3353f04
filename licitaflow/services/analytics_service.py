"""
Dashboard aggregates.

Every function takes the acting user and a ``ProcessFilter`` and counts
only processes that user can see. Results are plain JSON-ready
structures; rendering is the client's job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import case, func

from licitaflow.core.exceptions import ValidationError
from licitaflow.models import db
from licitaflow.models.auth import User
from licitaflow.models.process import Process
from licitaflow.models.reference import AppSetting, Department, ResourceSource
from licitaflow.services.helpers.lookups import commit_and_dispatch
from licitaflow.services.participation_service import require_admin
from licitaflow.services.process_service import ProcessFilter, filtered_query
from licitaflow.services.status_service import as_utc

logger = logging.getLogger(__name__)

_STATUS_KEYS = ("completed", "in_progress", "canceled", "overdue", "draft")
MONTHLY_GOAL_KEY = "monthly_goal"


def _visible_ids(user, filters):
    return filtered_query(user, filters).with_entities(Process.id).statement


def statistics(user, filters: ProcessFilter | None = None) -> dict:
    """Totals per status: {total, completed, in_progress, canceled, overdue, draft}."""
    rows = (
        filtered_query(user, filters)
        .with_entities(Process.status, func.count(Process.id))
        .group_by(Process.status)
        .all()
    )
    result = {key: 0 for key in _STATUS_KEYS}
    for status, count in rows:
        result[status] = count
    result["total"] = sum(count for _, count in rows)
    return result


def by_month(user, filters: ProcessFilter | None = None, year: int | None = None) -> list[dict]:
    """Twelve buckets (month 1..12) of processes by creation month."""
    buckets = {month: 0 for month in range(1, 13)}
    for (created_at,) in filtered_query(user, filters).with_entities(Process.created_at).all():
        created_at = as_utc(created_at)
        if year is not None and created_at.year != year:
            continue
        buckets[created_at.month] += 1
    return [{"month": month, "count": count} for month, count in buckets.items()]


def by_source(user, filters: ProcessFilter | None = None) -> list[dict]:
    rows = (
        db.session.query(ResourceSource.id, ResourceSource.code, func.count(Process.id))
        .join(Process, Process.source_id == ResourceSource.id)
        .filter(Process.id.in_(_visible_ids(user, filters)))
        .group_by(ResourceSource.id, ResourceSource.code)
        .order_by(func.count(Process.id).desc(), ResourceSource.code)
        .all()
    )
    return [{"source_id": sid, "source": code, "count": count} for sid, code, count in rows]


def by_responsible(user, filters: ProcessFilter | None = None) -> list[dict]:
    """Per responsible user: total and completed; users with no process are omitted."""
    completed = func.sum(case((Process.status == "completed", 1), else_=0))
    rows = (
        db.session.query(User.id, User.full_name, func.count(Process.id), completed)
        .join(Process, Process.responsible_id == User.id)
        .filter(Process.id.in_(_visible_ids(user, filters)))
        .group_by(User.id, User.full_name)
        .order_by(func.count(Process.id).desc(), User.full_name)
        .all()
    )
    return [
        {"responsible_id": uid, "responsible": name, "total": total, "completed": int(done or 0)}
        for uid, name, total, done in rows
    ]


def by_department(user, filters: ProcessFilter | None = None) -> list[dict]:
    """Processes currently held by each department (custody ranking)."""
    overdue = func.sum(case((Process.status == "overdue", 1), else_=0))
    rows = (
        db.session.query(Department.id, Department.name, func.count(Process.id), overdue)
        .join(Process, Process.current_department_id == Department.id)
        .filter(Process.id.in_(_visible_ids(user, filters)))
        .group_by(Department.id, Department.name)
        .order_by(func.count(Process.id).desc(), Department.name)
        .all()
    )
    return [
        {"department_id": did, "department": name, "count": count, "overdue": int(late or 0)}
        for did, name, count, late in rows
    ]


# ── Monthly goal ─────────────────────────────────────────────────────────────


def get_monthly_goal() -> int:
    setting = db.session.get(AppSetting, MONTHLY_GOAL_KEY)
    if setting is None:
        return current_app.config["MONTHLY_GOAL_DEFAULT"]
    return setting.value


def set_monthly_goal(value, acting_user: User) -> int:
    """Store the dashboard's monthly process goal (admin only, positive integer)."""
    require_admin(acting_user, "change the monthly goal")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("value must be a positive integer", details={"value": "invalid"})

    setting = db.session.get(AppSetting, MONTHLY_GOAL_KEY)
    if setting is None:
        setting = AppSetting(key=MONTHLY_GOAL_KEY, value=value)
        db.session.add(setting)
    setting.value = value
    setting.updated_by = acting_user.id
    setting.updated_at = datetime.now(timezone.utc)
    commit_and_dispatch()
    logger.info("Monthly goal set value=%d user_id=%s", value, acting_user.id)
    return setting.value

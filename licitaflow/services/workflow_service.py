"""
Step Workflow Engine.

Each process owns an ordered list of departmental steps copied from its
modality's template. Steps are worked strictly in sequence:

    pending ──complete──▶ completed
            ──reject────▶ completed_rejected   (approved with reservations)

Both outcomes are terminal and both count as "done" for the process.
Completing a step hands custody to the department of the next pending
step; completing the last one makes the process ``completed``.

A process may also be *returned* to a department that already worked on
it, with a mandatory comment. Step history is never rewritten.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, update

from licitaflow.core.exceptions import NotFoundError, StateError, ValidationError
from licitaflow.models import db
from licitaflow.models.process import Process, ProcessStep, validate_step_transition
from licitaflow.models.reference import Department
from licitaflow.services.business_days import add_business_days
from licitaflow.services.helpers.lookups import (
    commit_and_dispatch,
    get_active_process,
    require_reference,
)
from licitaflow.services.notification import NotificationService
from licitaflow.services.participation_service import (
    move_custody,
    require_admin,
    require_custody,
    require_view,
)
from licitaflow.services.status_service import refresh_status

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = ("canceled", "completed")


def _first_pending(process: Process) -> ProcessStep | None:
    return (
        process.steps.filter(ProcessStep.state == "pending")
        .order_by(None)
        .order_by(ProcessStep.sequence)
        .first()
    )


# ── Step instantiation ───────────────────────────────────────────────────────


def instantiate_steps(process: Process, modality, start) -> list[ProcessStep]:
    """
    Copy ``modality``'s step template onto ``process`` (caller commits).

    Due dates accumulate: a step is due ``sum(time_limit_days)`` business
    days after ``start`` counting itself and every step before it. Steps
    without a time limit get no due date but still advance the sum by 0.
    """
    steps = []
    elapsed = 0
    for template in modality.step_templates:
        due_date = None
        if template.time_limit_days is not None:
            elapsed += template.time_limit_days
            due_date = add_business_days(start, elapsed)
        step = ProcessStep(
            process=process,
            sequence=template.sequence,
            step_name=template.step_name,
            phase=template.phase or "",
            department_id=template.department_id,
            state="pending",
            due_date=due_date,
        )
        db.session.add(step)
        steps.append(step)
    logger.info(
        "Steps instantiated pbdoc=%s modality_id=%s count=%d",
        process.pbdoc_number, modality.id, len(steps),
    )
    return steps


def list_steps(process_id: int, acting_user) -> list[ProcessStep]:
    process = get_active_process(process_id)
    require_view(acting_user, process)
    return process.steps.all()


def add_step(process_id: int, step_name, department_id, due_date=None, phase=None, *, acting_user):
    """Append an ad-hoc pending step after the last one."""
    process = get_active_process(process_id)
    require_view(acting_user, process)
    require_custody(acting_user, process)
    if process.status == "canceled":
        raise StateError("Cannot add steps to a canceled process", current=process.status,
                         expected="not canceled")

    step_name = (step_name or "").strip()
    if not step_name:
        raise ValidationError("step_name is required", details={"step_name": "required"})
    if len(step_name) > 300:
        raise ValidationError("step_name must be ≤ 300 characters", details={"step_name": "too long"})
    department = require_reference(Department, department_id, "department_id")

    last_sequence = db.session.query(func.max(ProcessStep.sequence)) \
        .filter(ProcessStep.process_id == process.id).scalar() or 0
    step = ProcessStep(
        process_id=process.id,
        sequence=last_sequence + 1,
        step_name=step_name,
        phase=(phase or "").strip(),
        department_id=department.id,
        state="pending",
        due_date=due_date,
    )
    db.session.add(step)
    if process.current_department_id is None:
        move_custody(process, department.id)
    db.session.flush()
    refresh_status(process)
    process.touch()
    commit_and_dispatch()
    logger.info(
        "Step added process_id=%s step_id=%s sequence=%s department_id=%s user_id=%s",
        process.id, step.id, step.sequence, department.id, acting_user.id,
    )
    return step


# ── Completion ───────────────────────────────────────────────────────────────


def complete_step(step_id: int, acting_user, rejected: bool = False, observations=None) -> Process:
    """
    Complete (or reject-but-approve) the first pending step of a process.

    Raises:
        NotFoundError: step or its process missing / in the trash.
        AuthorizationError: process is not in the user's department.
        StateError: process closed, step already done, step out of order,
            or a concurrent completion won the race.
    """
    step = db.session.get(ProcessStep, step_id)
    if step is None:
        raise NotFoundError(resource="ProcessStep", resource_id=step_id)
    process = step.process
    if process is None or process.deleted_at is not None:
        raise NotFoundError(resource="ProcessStep", resource_id=step_id)

    new_state = "completed_rejected" if rejected else "completed"
    if not validate_step_transition(step.state, new_state):
        raise StateError(
            f"Step already {step.state}",
            current=step.state,
            expected="pending",
            details={"step_id": step.id},
        )

    require_custody(acting_user, process)

    if process.status in _CLOSED_STATUSES:
        raise StateError(
            f"Process is {process.status}",
            current=process.status,
            expected=["draft", "in_progress", "overdue"],
        )

    first_pending = _first_pending(process)
    if first_pending is not None and first_pending.id != step.id:
        raise StateError(
            "Steps must be completed in order",
            current=f"sequence {step.sequence}",
            expected=f"sequence {first_pending.sequence}",
            details={"step_id": step.id, "next_step_id": first_pending.id},
        )

    now = datetime.now(timezone.utc)
    result = db.session.execute(
        update(ProcessStep)
        .where(ProcessStep.id == step.id, ProcessStep.state == "pending")
        .values(
            state=new_state,
            completed_at=now,
            completed_by=acting_user.id,
            observations=observations,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise StateError(
            "Step was completed concurrently",
            current="completed",
            expected="pending",
            details={"step_id": step_id},
        )
    db.session.expire(step)

    next_step = _first_pending(process)
    if next_step is not None and next_step.department_id != process.current_department_id:
        move_custody(process, next_step.department_id)

    refresh_status(process, now)
    process.touch()

    event = "step_rejected" if rejected else "step_completed"
    title = (
        f"Etapa rejeitada com aprovação no processo {process.pbdoc_number}"
        if rejected
        else f"Etapa concluída no processo {process.pbdoc_number}"
    )
    notif = NotificationService.publish(
        event,
        title=title,
        message=step.step_name,
        process_id=process.id,
        department_id=process.current_department_id,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Step %s process_id=%s step_id=%s user_id=%s next_department_id=%s status=%s",
        new_state, process.id, step_id, acting_user.id,
        process.current_department_id, process.status,
    )
    return process


# ── Return ───────────────────────────────────────────────────────────────────


def return_process(process_id: int, comment, acting_user, target_department_id=None) -> Process:
    """
    Send a process back to a department that already handled it.

    Default target is the department of the most recently completed step
    (highest sequence). Only admins may pick an explicit target.
    ``return_comments`` keeps only the latest comment.
    """
    process = get_active_process(process_id)
    require_view(acting_user, process)

    comment = (comment or "").strip()
    if not comment:
        raise ValidationError("comment is required", details={"comment": "required"})

    require_custody(acting_user, process)

    if target_department_id not in (None, ""):
        require_admin(acting_user, "choose the return department")
        target = require_reference(Department, target_department_id, "target_department_id")
    else:
        last_done = (
            process.steps.filter(ProcessStep.state != "pending")
            .order_by(None)
            .order_by(ProcessStep.sequence.desc())
            .first()
        )
        if last_done is None:
            raise StateError(
                "No completed step to return to",
                current="no completed steps",
                expected="at least one completed step",
            )
        target = last_done.department

    old_department_id = move_custody(process, target.id)
    process.return_comments = comment
    refresh_status(process)
    process.touch()

    notif = NotificationService.publish(
        "process_returned",
        title=f"Processo {process.pbdoc_number} devolvido",
        message=comment,
        process_id=process.id,
        department_id=target.id,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Process returned process_id=%s from=%s to=%s user_id=%s",
        process.id, old_department_id, target.id, acting_user.id,
    )
    return process


# ── Review ───────────────────────────────────────────────────────────────────


def list_rejected_steps(acting_user) -> list[ProcessStep]:
    """Rejected-but-approved steps of live processes, newest first (admin only)."""
    require_admin(acting_user, "review rejected steps")
    return (
        ProcessStep.query.join(Process, ProcessStep.process_id == Process.id)
        .filter(
            ProcessStep.state == "completed_rejected",
            Process.deleted_at.is_(None),
        )
        .order_by(ProcessStep.completed_at.desc(), ProcessStep.id.desc())
        .all()
    )

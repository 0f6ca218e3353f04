"""
Transfer / Participation Manager.

Owns the single authorization rule for processes:

    admin                       → sees and acts on everything (capability check)
    active user grant           → ProcessParticipant(user_id=user.id, is_active)
    active department grant     → ProcessParticipant(user_id=NULL,
                                                     department_id=user.department_id)

Custody (who may act on steps / return the process) is narrower: the
process must currently sit in the user's department.

Transfers move custody: participants scoped to the old department (its
department-wide grant and its users' grants) are deactivated, history
kept; the target department gets a grant.

Rules:
  - acting user is always an explicit parameter (never read from g).
  - db.session.commit() happens only in the public operations here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select

from licitaflow.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from licitaflow.models import db
from licitaflow.models.auth import User
from licitaflow.models.process import PARTICIPANT_ROLES, Process, ProcessParticipant
from licitaflow.models.reference import Department
from licitaflow.services.helpers.lookups import (
    commit_and_dispatch,
    get_active_process,
    require_reference,
)
from licitaflow.services.notification import NotificationService
from licitaflow.services.status_service import refresh_status

logger = logging.getLogger(__name__)


# ── Authorization ────────────────────────────────────────────────────────────


def _grant_clause(user: User):
    user_grant = ProcessParticipant.user_id == user.id
    if user.department_id is None:
        return user_grant
    dept_grant = and_(
        ProcessParticipant.user_id.is_(None),
        ProcessParticipant.department_id == user.department_id,
    )
    return or_(user_grant, dept_grant)


def can_view(user: User, process: Process) -> bool:
    """Single visibility decision for a process."""
    if user.is_admin:
        return True
    return db.session.execute(
        select(ProcessParticipant.id).where(
            ProcessParticipant.process_id == process.id,
            ProcessParticipant.is_active.is_(True),
            _grant_clause(user),
        ).limit(1)
    ).first() is not None


def require_view(user: User, process: Process) -> None:
    """Raise NotFoundError (not 403) so invisible processes are not confirmed."""
    if not can_view(user, process):
        logger.info("Visibility denied process_id=%s user_id=%s", process.id, user.id)
        raise NotFoundError(resource="Process", resource_id=process.id)


def require_custody(user: User, process: Process) -> None:
    """The acting user's department must currently hold the process."""
    if user.is_admin:
        return
    if user.department_id is None or user.department_id != process.current_department_id:
        raise AuthorizationError(
            "Process is not in your department",
            details={
                "current_department_id": process.current_department_id,
                "user_department_id": user.department_id,
            },
        )


def require_admin(user: User, action: str) -> None:
    if not user.is_admin:
        raise AuthorizationError(f"Only administrators may {action}", details={"role": user.role})


def visible_processes_query(user: User, include_deleted: bool = False):
    """Process query restricted to what ``user`` may see."""
    q = Process.query if include_deleted else Process.query_live()
    if user.is_admin:
        return q
    granted = select(ProcessParticipant.process_id).where(
        ProcessParticipant.is_active.is_(True),
        _grant_clause(user),
    )
    return q.filter(Process.id.in_(granted))


def _participant_role(user: User, process: Process) -> str | None:
    row = ProcessParticipant.query.filter_by(
        process_id=process.id, user_id=user.id, is_active=True,
    ).first()
    return row.role if row else None


# ── Grants & custody ─────────────────────────────────────────────────────────


def grant(process: Process, *, user_id: int | None = None, department_id: int | None = None,
          role: str = "viewer") -> ProcessParticipant:
    """
    Create or reactivate a participant row (caller commits).

    A user grant records the user's department at grant time, so that
    moving custody away from that department revokes it.
    """
    if user_id is not None:
        user = db.session.get(User, user_id)
        department_id = user.department_id if user is not None else None
        row = ProcessParticipant.query.filter_by(process_id=process.id, user_id=user_id).first()
        if row is not None:
            row.department_id = department_id
    else:
        row = ProcessParticipant.query.filter_by(
            process_id=process.id, user_id=None, department_id=department_id,
        ).first()
    if row is None:
        row = ProcessParticipant(
            process_id=process.id,
            user_id=user_id,
            department_id=department_id,
            role=role,
            is_active=True,
        )
        db.session.add(row)
    else:
        row.is_active = True
        row.role = role
    return row


def move_custody(process: Process, target_department_id: int) -> int | None:
    """
    Hand the process to ``target_department_id`` (caller commits).

    Every active grant scoped to the old department (its department-wide
    grant and the grants of its users) is deactivated; grants held by
    users of other departments survive.

    Returns the previous department id.
    """
    old_department_id = process.current_department_id
    if old_department_id is not None and old_department_id != target_department_id:
        revoked = ProcessParticipant.query.filter_by(
            process_id=process.id, department_id=old_department_id, is_active=True,
        ).all()
        for row in revoked:
            row.is_active = False
        logger.info(
            "Custody revoked process_id=%s department_id=%s participants=%d",
            process.id, old_department_id, len(revoked),
        )
    process.current_department_id = target_department_id
    grant(process, department_id=target_department_id, role="editor")
    return old_department_id


# ── Transfer ─────────────────────────────────────────────────────────────────


def transfer_process(process_id: int, target_department_id, acting_user: User) -> Process:
    """
    Move a process to another department.

    The transferring user becomes the responsible user from now on.

    Raises:
        NotFoundError: process missing, in the trash, or not visible to the user.
        ValidationError: target department does not exist (nothing is changed).
        StateError: the process is already in the target department.
    """
    process = get_active_process(process_id)
    require_view(acting_user, process)
    department = require_reference(Department, target_department_id, "department_id")

    if process.current_department_id == department.id:
        raise StateError(
            "Process is already in the target department",
            current=str(process.current_department_id),
            expected=f"department other than {department.id}",
        )

    old_department_id = move_custody(process, department.id)
    process.responsible_id = acting_user.id
    process.responsible_since = datetime.now(timezone.utc)
    refresh_status(process)
    process.touch()

    notif = NotificationService.publish(
        "process_transferred",
        title=f"Processo {process.pbdoc_number} transferido",
        message=f"Transferido para {department.name}.",
        process_id=process.id,
        department_id=department.id,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Process transferred process_id=%s from=%s to=%s user_id=%s",
        process.id, old_department_id, department.id, acting_user.id,
    )
    return process


# ── Participant management ───────────────────────────────────────────────────


def list_participants(process_id: int, acting_user: User, include_inactive: bool = False) -> list[ProcessParticipant]:
    process = get_active_process(process_id)
    require_view(acting_user, process)
    q = process.participants
    if not include_inactive:
        q = q.filter(ProcessParticipant.is_active.is_(True))
    return q.all()


def add_participant(process_id: int, data: dict, acting_user: User) -> ProcessParticipant:
    """
    Grant a user or department access to a process (admin or owner only).

    Body keys: user_id?, department_id?, role (viewer | editor | owner).
    """
    process = get_active_process(process_id)
    require_view(acting_user, process)
    if not acting_user.is_admin and _participant_role(acting_user, process) != "owner":
        raise AuthorizationError("Only the process owner may add participants")

    role = (data.get("role") or "viewer").strip().lower()
    if role not in PARTICIPANT_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(sorted(PARTICIPANT_ROLES))}",
            details={"role": "invalid"},
        )

    user_id = data.get("user_id")
    department_id = data.get("department_id")
    if user_id in (None, "") and department_id in (None, ""):
        raise ValidationError(
            "user_id or department_id is required",
            details={"user_id": "required", "department_id": "required"},
        )
    user = require_reference(User, user_id, "user_id") if user_id not in (None, "") else None
    department = (
        require_reference(Department, department_id, "department_id")
        if department_id not in (None, "") else None
    )

    row = grant(
        process,
        user_id=user.id if user else None,
        department_id=department.id if department else None,
        role=role,
    )
    process.touch()
    notif = NotificationService.publish(
        "participant_added",
        title=f"Você foi adicionado ao processo {process.pbdoc_number}",
        process_id=process.id,
        department_id=department.id if department else None,
        recipient_id=user.id if user else None,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Participant added process_id=%s participant_id=%s role=%s by user_id=%s",
        process.id, row.id, role, acting_user.id,
    )
    return row


def remove_participant(process_id: int, participant_id: int, acting_user: User) -> None:
    """Deactivate a participant row (admin, owner, or the participant themself)."""
    process = get_active_process(process_id)
    require_view(acting_user, process)
    row = ProcessParticipant.query.filter_by(id=participant_id, process_id=process.id).first()
    if row is None:
        raise NotFoundError(resource="ProcessParticipant", resource_id=participant_id)

    is_self = row.user_id is not None and row.user_id == acting_user.id
    if not (acting_user.is_admin or is_self or _participant_role(acting_user, process) == "owner"):
        raise AuthorizationError("Only the process owner may remove participants")
    if not row.is_active:
        raise StateError("Participant already inactive", current="inactive", expected="active")

    row.is_active = False
    commit_and_dispatch()
    logger.info(
        "Participant deactivated process_id=%s participant_id=%s by user_id=%s",
        process.id, row.id, acting_user.id,
    )

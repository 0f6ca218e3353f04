"""
Process service — create, edit, list and trash bidding processes.

Extracted business logic so ``process_bp`` stays thin:
    - create_process:              validate refs, instantiate steps, grant participants
    - update_process:              field edits + explicit cancel / reopen
    - soft_delete / restore:       trash handling (admin only)
    - permanently_delete_process:  irreversible, admin only, trash only
    - list_visible_processes:      visibility + ProcessFilter
    - list_deleted_processes:      admin trash listing

Transaction policy: every public function commits once via
``commit_and_dispatch``; validation errors raise before any mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from licitaflow.core.exceptions import ConflictError, StateError, ValidationError
from licitaflow.models import db
from licitaflow.models.auth import User
from licitaflow.models.process import (
    MANUAL_STATUS_TRANSITIONS,
    PROCESS_PRIORITIES,
    PROCESS_STATUSES,
    Process,
    validate_manual_status_transition,
)
from licitaflow.models.reference import BiddingModality, Department, ResourceSource
from licitaflow.services.business_days import add_business_days
from licitaflow.services.helpers.lookups import (
    commit_and_dispatch,
    get_active_process,
    get_or_raise,
    require_reference,
)
from licitaflow.services.notification import NotificationService
from licitaflow.services.participation_service import (
    grant,
    move_custody,
    require_admin,
    require_view,
    visible_processes_query,
)
from licitaflow.services.status_service import refresh_status
from licitaflow.services.workflow_service import instantiate_steps
from licitaflow.utils.helpers import parse_datetime_input, parse_int_arg

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 200
MAX_LIMIT = 1000


# ── Filters ──────────────────────────────────────────────────────────────────


@dataclass
class ProcessFilter:
    """Listing filter; every field is optional and combined with AND."""

    pbdoc_number: str | None = None
    modality_id: int | None = None
    source_id: int | None = None
    responsible_id: int | None = None
    status: str | None = None
    current_department_id: int | None = None
    priority: str | None = None
    include_deleted: bool = False
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @classmethod
    def from_args(cls, args) -> "ProcessFilter":
        """Build from a request.args-like mapping; bad numbers fall back to defaults."""
        status = (args.get("status") or "").strip() or None
        if status is not None and status not in PROCESS_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(PROCESS_STATUSES))}",
                details={"status": "invalid"},
            )
        priority = (args.get("priority") or "").strip() or None
        if priority is not None and priority not in PROCESS_PRIORITIES:
            raise ValidationError(
                f"priority must be one of: {', '.join(sorted(PROCESS_PRIORITIES))}",
                details={"priority": "invalid"},
            )
        limit = parse_int_arg(args.get("limit"), DEFAULT_LIMIT)
        return cls(
            pbdoc_number=(args.get("pbdoc_number") or "").strip() or None,
            modality_id=parse_int_arg(args.get("modality_id")),
            source_id=parse_int_arg(args.get("source_id")),
            responsible_id=parse_int_arg(args.get("responsible_id")),
            status=status,
            current_department_id=parse_int_arg(args.get("current_department_id")),
            priority=priority,
            include_deleted=str(args.get("include_deleted", "")).lower() in ("1", "true", "yes"),
            limit=max(1, min(limit, MAX_LIMIT)),
            offset=max(parse_int_arg(args.get("offset"), 0), 0),
        )

    def apply(self, query):
        """Apply the column filters (not pagination) to a Process query."""
        if self.pbdoc_number:
            query = query.filter(Process.pbdoc_number.ilike(f"%{self.pbdoc_number}%"))
        if self.modality_id is not None:
            query = query.filter(Process.modality_id == self.modality_id)
        if self.source_id is not None:
            query = query.filter(Process.source_id == self.source_id)
        if self.responsible_id is not None:
            query = query.filter(Process.responsible_id == self.responsible_id)
        if self.status:
            query = query.filter(Process.status == self.status)
        if self.current_department_id is not None:
            query = query.filter(Process.current_department_id == self.current_department_id)
        if self.priority:
            query = query.filter(Process.priority == self.priority)
        return query


def filtered_query(acting_user: User, filters: ProcessFilter | None = None):
    """Visible processes matching ``filters``, unpaginated and unordered."""
    filters = filters or ProcessFilter()
    include_deleted = filters.include_deleted and acting_user.is_admin
    return filters.apply(visible_processes_query(acting_user, include_deleted=include_deleted))


# ── Validation helpers ───────────────────────────────────────────────────────


def _clean_text(data: dict, field: str, *, required: bool = False, max_len: int | None = None):
    value = data.get(field)
    value = value.strip() if isinstance(value, str) else value
    if not value:
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    if max_len and len(value) > max_len:
        raise ValidationError(f"{field} must be ≤ {max_len} characters", details={field: "too long"})
    return value


def _validate_priority(value):
    priority = (value or "medium").strip().lower()
    if priority not in PROCESS_PRIORITIES:
        raise ValidationError(
            f"priority must be one of: {', '.join(sorted(PROCESS_PRIORITIES))}",
            details={"priority": "invalid"},
        )
    return priority


def _parse_deadline(value):
    try:
        return parse_datetime_input(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"deadline": "invalid"})


def _require_active_user(user_id, field):
    user = require_reference(User, user_id, field)
    if not user.is_active:
        raise ValidationError(f"{field}={user.id} is an inactive user", details={field: "inactive"})
    return user


# ── Create ───────────────────────────────────────────────────────────────────


def create_process(data: dict, acting_user: User) -> Process:
    """
    Register a new bidding process.

    Body keys: pbdoc_number*, description*, modality_id*, source_id*,
    responsible_id (default: acting user), priority, deadline,
    current_department_id, central_de_compras.

    An explicit ``deadline`` wins; otherwise the modality's
    ``deadline_days`` business days from now (none when 0).
    Initial custody is the explicit department, else the first step's
    department, else the creator's department.
    """
    pbdoc_number = _clean_text(data, "pbdoc_number", required=True, max_len=60)
    description = _clean_text(data, "description", required=True)
    modality = require_reference(BiddingModality, data.get("modality_id"), "modality_id")
    source = require_reference(ResourceSource, data.get("source_id"), "source_id")
    responsible = _require_active_user(data.get("responsible_id") or acting_user.id, "responsible_id")
    priority = _validate_priority(data.get("priority"))
    central = _clean_text(data, "central_de_compras", max_len=60)
    department = None
    if data.get("current_department_id") not in (None, ""):
        department = require_reference(Department, data["current_department_id"], "current_department_id")

    if Process.query.filter_by(pbdoc_number=pbdoc_number).first() is not None:
        raise ConflictError("Process", "pbdoc_number", pbdoc_number)

    now = datetime.now(timezone.utc)
    deadline = _parse_deadline(data.get("deadline"))
    if deadline is None and modality.deadline_days:
        deadline = add_business_days(now, modality.deadline_days)

    process = Process(
        pbdoc_number=pbdoc_number,
        description=description,
        modality_id=modality.id,
        source_id=source.id,
        responsible_id=responsible.id,
        responsible_since=now,
        central_de_compras=central,
        priority=priority,
        status="draft",
        deadline=deadline,
        created_at=now,
        updated_at=now,
    )
    db.session.add(process)
    steps = instantiate_steps(process, modality, now)
    db.session.flush()

    target_department_id = (
        department.id if department
        else steps[0].department_id if steps
        else acting_user.department_id
    )
    if target_department_id is not None:
        move_custody(process, target_department_id)
    grant(process, user_id=acting_user.id, role="owner")
    if responsible.id != acting_user.id:
        grant(process, user_id=responsible.id, role="editor")

    refresh_status(process, now)
    notif = NotificationService.publish(
        "process_created",
        title=f"Novo processo {process.pbdoc_number}",
        message=description[:200],
        process_id=process.id,
        department_id=process.current_department_id,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Process created process_id=%s pbdoc=%s modality_id=%s steps=%d department_id=%s user_id=%s",
        process.id, pbdoc_number, modality.id, len(steps),
        process.current_department_id, acting_user.id,
    )
    return process


# ── Read ─────────────────────────────────────────────────────────────────────


def get_visible_process(process_id: int, acting_user: User) -> Process:
    process = get_active_process(process_id)
    require_view(acting_user, process)
    return process


def list_visible_processes(acting_user: User, filters: ProcessFilter | None = None) -> list[Process]:
    """Newest first; see ``list_visible_processes_page`` for the total count."""
    items, _ = list_visible_processes_page(acting_user, filters)
    return items


def list_visible_processes_page(acting_user: User, filters: ProcessFilter | None = None):
    filters = filters or ProcessFilter()
    q = filtered_query(acting_user, filters)
    total = q.count()
    items = (
        q.order_by(Process.created_at.desc(), Process.id.desc())
        .offset(filters.offset)
        .limit(filters.limit)
        .all()
    )
    return items, total


def list_deleted_processes(acting_user: User) -> list[Process]:
    """Trash listing, most recently deleted first (admin only)."""
    require_admin(acting_user, "view the trash")
    return Process.query_trash().order_by(Process.deleted_at.desc(), Process.id.desc()).all()


# ── Update ───────────────────────────────────────────────────────────────────

_EDITABLE_TEXT = {"description": None, "central_de_compras": 60}


def update_process(process_id: int, data: dict, acting_user: User) -> Process:
    """
    Partial update.

    Changing ``responsible_id`` restamps ``responsible_since`` and grants
    the new responsible editor access. ``status`` accepts only the manual
    transitions (cancel / reopen / start); everything else is derived.
    """
    process = get_active_process(process_id)
    require_view(acting_user, process)

    changes = {}
    for field, max_len in _EDITABLE_TEXT.items():
        if field in data:
            value = _clean_text(data, field, required=(field == "description"), max_len=max_len)
            if value != getattr(process, field):
                changes[field] = value

    if "priority" in data:
        priority = _validate_priority(data.get("priority"))
        if priority != process.priority:
            changes["priority"] = priority

    if "modality_id" in data:
        modality = require_reference(BiddingModality, data.get("modality_id"), "modality_id")
        if modality.id != process.modality_id:
            changes["modality_id"] = modality.id

    if "source_id" in data:
        source = require_reference(ResourceSource, data.get("source_id"), "source_id")
        if source.id != process.source_id:
            changes["source_id"] = source.id

    new_responsible = None
    if "responsible_id" in data:
        responsible = _require_active_user(data.get("responsible_id"), "responsible_id")
        if responsible.id != process.responsible_id:
            new_responsible = responsible

    if "deadline" in data:
        changes["deadline"] = _parse_deadline(data.get("deadline"))

    if "pbdoc_number" in data:
        pbdoc_number = _clean_text(data, "pbdoc_number", required=True, max_len=60)
        if pbdoc_number != process.pbdoc_number:
            clash = Process.query.filter(
                Process.pbdoc_number == pbdoc_number, Process.id != process.id,
            ).first()
            if clash is not None:
                raise ConflictError("Process", "pbdoc_number", pbdoc_number)
            changes["pbdoc_number"] = pbdoc_number

    requested_status = None
    if data.get("status") not in (None, "", process.status):
        requested_status = data["status"]
        if requested_status not in PROCESS_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(PROCESS_STATUSES))}",
                details={"status": "invalid"},
            )
        if not validate_manual_status_transition(process.status, requested_status):
            raise StateError(
                f"Cannot change status from {process.status} to {requested_status}",
                current=process.status,
                expected=MANUAL_STATUS_TRANSITIONS.get(process.status, []),
            )

    # ── Apply (all validation done) ──
    for field, value in changes.items():
        setattr(process, field, value)
    now = datetime.now(timezone.utc)
    if new_responsible is not None:
        process.responsible_id = new_responsible.id
        process.responsible_since = now
        grant(process, user_id=new_responsible.id, role="editor")
        changes["responsible_id"] = new_responsible.id
    if requested_status is not None:
        # canceled sticks; anything else is a starting point for re-derivation
        process.status = requested_status
        changes["status"] = requested_status
    refresh_status(process, now)
    process.touch()

    notif = NotificationService.publish(
        "process_updated",
        title=f"Processo {process.pbdoc_number} atualizado",
        message=", ".join(sorted(changes)) or "sem alterações",
        process_id=process.id,
        department_id=process.current_department_id,
    )
    commit_and_dispatch([notif])
    logger.info(
        "Process updated process_id=%s fields=%s status=%s user_id=%s",
        process.id, sorted(changes), process.status, acting_user.id,
    )
    return process


# ── Trash ────────────────────────────────────────────────────────────────────


def soft_delete_process(process_id: int, acting_user: User) -> None:
    """Move a process to the trash; only ``deleted_at``/``deleted_by`` change."""
    require_admin(acting_user, "delete processes")
    process = get_active_process(process_id)
    process.move_to_trash(acting_user.id)
    notif = NotificationService.publish(
        "process_deleted",
        title=f"Processo {process.pbdoc_number} movido para a lixeira",
        process_id=process.id,
    )
    commit_and_dispatch([notif])
    logger.info("Process soft-deleted process_id=%s user_id=%s", process.id, acting_user.id)


def restore_process(process_id: int, acting_user: User) -> Process:
    """Take a process out of the trash with every other field unchanged."""
    require_admin(acting_user, "restore processes")
    process = get_or_raise(Process, process_id, "Process")
    if not process.in_trash:
        raise StateError("Process is not in the trash", current="active", expected="deleted")
    process.restore_from_trash()
    notif = NotificationService.publish(
        "process_restored",
        title=f"Processo {process.pbdoc_number} restaurado",
        process_id=process.id,
        department_id=process.current_department_id,
    )
    commit_and_dispatch([notif])
    logger.info("Process restored process_id=%s user_id=%s", process.id, acting_user.id)
    return process


def permanently_delete_process(process_id: int, acting_user: User) -> None:
    """Irreversibly remove a trashed process with its steps and participants."""
    require_admin(acting_user, "permanently delete processes")
    process = get_or_raise(Process, process_id, "Process")
    if not process.in_trash:
        raise StateError(
            "Process must be in the trash before permanent deletion",
            current="active",
            expected="deleted",
        )
    pbdoc_number = process.pbdoc_number
    db.session.delete(process)
    commit_and_dispatch()
    logger.warning(
        "Process permanently deleted process_id=%s pbdoc=%s user_id=%s",
        process_id, pbdoc_number, acting_user.id,
    )

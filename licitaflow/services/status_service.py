"""
Process Status Controller.

Derives the stored ``Process.status`` from step completion and the
deadline. The derived value is written on every mutation (step
completion, transfer, return, explicit edit) so reads never recompute.

Rules, first match wins:
    1. soft-deleted        → left untouched (trash is a visibility filter)
    2. canceled            → canceled, until explicitly reopened
    3. ≥1 step, all done   → completed   (rejected-but-approved counts as done)
    4. deadline < now      → overdue
    5. any step done, or already in_progress → in_progress, else draft
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from licitaflow.models import db
from licitaflow.models.process import Process, ProcessStep

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def derive_status(process: Process, steps: list[ProcessStep], now: datetime | None = None) -> str:
    """Return the status ``process`` should have; pure, no writes."""
    now = as_utc(now) or _utcnow()

    if process.deleted_at is not None:
        return process.status
    if process.status == "canceled":
        return "canceled"
    if steps and all(s.is_completed for s in steps):
        return "completed"
    deadline = as_utc(process.deadline)
    if deadline is not None and deadline < now:
        return "overdue"
    if any(s.is_completed for s in steps) or process.status == "in_progress":
        return "in_progress"
    return "draft"


def refresh_status(process: Process, now: datetime | None = None) -> tuple[str, str]:
    """
    Re-derive and assign the process status (caller commits).

    Returns:
        (old_status, new_status)
    """
    old = process.status
    new = derive_status(process, process.steps.all(), now)
    if new != old:
        process.status = new
        logger.info(
            "Process status derived process_id=%s %s → %s", process.id, old, new,
        )
    return old, new


def refresh_overdue(now: datetime | None = None) -> dict:
    """
    Periodic sweep: mark active processes whose deadline has passed.

    Run from the ``flask mark-overdue`` command (cron / external scheduler).
    Returns a summary dict.
    """
    from licitaflow.services.notification import NotificationService

    now = as_utc(now) or _utcnow()
    candidates = (
        Process.query_live()
        .filter(
            Process.deadline.isnot(None),
            Process.status.in_(["draft", "in_progress"]),
        )
        .all()
    )

    marked = []
    for process in candidates:
        _, new = refresh_status(process, now)
        if new == "overdue":
            process.touch()
            marked.append(
                NotificationService.publish(
                    "process_overdue",
                    title=f"Processo {process.pbdoc_number} está atrasado",
                    message=f"O prazo venceu em {as_utc(process.deadline).date().isoformat()}.",
                    process_id=process.id,
                    department_id=process.current_department_id,
                )
            )

    db.session.commit()
    NotificationService.dispatch(marked)
    logger.info("Overdue sweep checked=%d marked=%d", len(candidates), len(marked))
    return {"checked": len(candidates), "marked_overdue": len(marked)}

"""
Process status controller tests.

Tests cover:
  - derive_status precedence (canceled, completed, overdue, in_progress, draft)
  - refresh_status writes only on change
  - refresh_overdue sweep over live processes
"""
from datetime import datetime, timedelta, timezone

from licitaflow.models import db
from licitaflow.models.notification import Notification
from licitaflow.models.process import Process, ProcessStep
from licitaflow.services.status_service import (
    derive_status,
    refresh_overdue,
    refresh_status,
)

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _process(**kw):
    kw.setdefault("status", "draft")
    return Process(pbdoc_number="X", description="x", **kw)


def _steps(*states):
    return [ProcessStep(sequence=i, step_name=f"s{i}", state=s) for i, s in enumerate(states, 1)]


class TestDeriveStatus:
    def test_no_steps_no_deadline_is_draft(self):
        assert derive_status(_process(), [], NOW) == "draft"

    def test_all_steps_done_is_completed(self):
        steps = _steps("completed", "completed_rejected")
        assert derive_status(_process(), steps, NOW) == "completed"

    def test_completed_wins_over_past_deadline(self):
        p = _process(deadline=NOW - timedelta(days=3))
        assert derive_status(p, _steps("completed"), NOW) == "completed"

    def test_past_deadline_is_overdue(self):
        p = _process(deadline=NOW - timedelta(days=1))
        assert derive_status(p, _steps("completed", "pending"), NOW) == "overdue"

    def test_naive_deadline_treated_as_utc(self):
        p = _process(deadline=(NOW - timedelta(hours=1)).replace(tzinfo=None))
        assert derive_status(p, _steps("pending"), NOW) == "overdue"

    def test_future_deadline_with_progress_is_in_progress(self):
        p = _process(deadline=NOW + timedelta(days=1))
        assert derive_status(p, _steps("completed", "pending"), NOW) == "in_progress"

    def test_no_progress_is_draft(self):
        assert derive_status(_process(), _steps("pending", "pending"), NOW) == "draft"

    def test_explicit_in_progress_is_kept(self):
        p = _process(status="in_progress")
        assert derive_status(p, _steps("pending"), NOW) == "in_progress"

    def test_canceled_sticks(self):
        p = _process(status="canceled", deadline=NOW - timedelta(days=5))
        assert derive_status(p, _steps("completed"), NOW) == "canceled"

    def test_deleted_keeps_stored_status(self):
        p = _process(status="in_progress", deadline=NOW - timedelta(days=5))
        p.deleted_at = NOW
        assert derive_status(p, _steps("pending"), NOW) == "in_progress"


class TestRefresh:
    def test_refresh_status_reports_change(self, new_process):
        process = new_process()
        process.deadline = NOW - timedelta(days=1)
        old, new = refresh_status(process, NOW)
        assert (old, new) == ("draft", "overdue")
        assert process.status == "overdue"

    def test_refresh_overdue_marks_and_notifies(self, new_process):
        late = new_process("PBDOC-LATE")
        on_time = new_process("PBDOC-ONTIME")
        late.deadline = NOW - timedelta(days=1)
        on_time.deadline = NOW + timedelta(days=10)
        db.session.commit()

        summary = refresh_overdue(NOW)

        assert summary == {"checked": 2, "marked_overdue": 1}
        assert db.session.get(Process, late.id).status == "overdue"
        assert db.session.get(Process, on_time.id).status == "draft"
        assert Notification.query.filter_by(event="process_overdue", process_id=late.id).count() == 1

    def test_refresh_overdue_ignores_trash(self, new_process, org):
        process = new_process()
        process.deadline = NOW - timedelta(days=1)
        process.move_to_trash(org.admin.id)
        db.session.commit()

        summary = refresh_overdue(NOW)

        assert summary["checked"] == 0
        assert db.session.get(Process, process.id).status == "draft"

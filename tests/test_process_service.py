"""
Process service tests — create, edit, list and trash.

Tests cover:
  - Creation: required fields, references, deadline, custody, grants
  - Partial update incl. manual status transitions and responsible change
  - Filtered, paginated listing restricted to visibility
  - Soft delete / restore / permanent delete (admin only)
"""
from datetime import datetime, timedelta, timezone

import pytest
from conftest import make_user

from licitaflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from licitaflow.models import db
from licitaflow.models.notification import Notification
from licitaflow.models.process import Process, ProcessParticipant, ProcessStep
from licitaflow.services.business_days import add_business_days
from licitaflow.services.process_service import (
    MAX_LIMIT,
    ProcessFilter,
    get_visible_process,
    list_deleted_processes,
    list_visible_processes,
    list_visible_processes_page,
    permanently_delete_process,
    restore_process,
    soft_delete_process,
    update_process,
)
from licitaflow.services.status_service import as_utc
from licitaflow.services.workflow_service import complete_step


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_defaults(self, new_process, org):
        process = new_process()
        assert process.status == "draft"
        assert process.priority == "medium"
        assert process.responsible_id == org.alice.id
        assert process.current_department_id == org.dept_a.id
        assert process.deleted_at is None
        assert Notification.query.filter_by(event="process_created").count() == 1

    def test_deadline_from_modality_business_days(self, new_process):
        process = new_process()
        assert as_utc(process.deadline) == add_business_days(as_utc(process.created_at), 3)

    def test_explicit_deadline_wins(self, new_process):
        process = new_process(deadline="2030-03-15")
        assert as_utc(process.deadline) == datetime(2030, 3, 15, tzinfo=timezone.utc)

    def test_brazilian_date_format(self, new_process):
        process = new_process(deadline="15/03/2030")
        assert as_utc(process.deadline) == datetime(2030, 3, 15, tzinfo=timezone.utc)

    def test_no_deadline_when_modality_has_none(self, new_process, org):
        process = new_process(modality_id=org.empty_modality.id)
        assert process.deadline is None

    def test_bad_deadline(self, new_process):
        with pytest.raises(ValidationError):
            new_process(deadline="amanhã")

    @pytest.mark.parametrize("field", ["pbdoc_number", "description", "modality_id", "source_id"])
    def test_required_fields(self, new_process, field):
        with pytest.raises(ValidationError):
            new_process(**{field: None})

    def test_unknown_modality(self, new_process):
        with pytest.raises(ValidationError):
            new_process(modality_id=424242)
        assert Process.query.count() == 0

    def test_invalid_priority(self, new_process):
        with pytest.raises(ValidationError):
            new_process(priority="urgent")

    def test_inactive_responsible(self, new_process, org):
        ghost = make_user("ghost", org.dept_a)
        ghost.is_active = False
        db.session.commit()
        with pytest.raises(ValidationError):
            new_process(responsible_id=ghost.id)

    def test_duplicate_pbdoc(self, new_process):
        new_process("PBDOC-1")
        with pytest.raises(ConflictError):
            new_process("PBDOC-1")

    def test_explicit_department_takes_custody(self, new_process, org):
        process = new_process(current_department_id=org.dept_b.id)
        assert process.current_department_id == org.dept_b.id
        assert get_visible_process(process.id, org.bruno).id == process.id

    def test_empty_modality_uses_creator_department(self, new_process, org):
        process = new_process(modality_id=org.empty_modality.id)
        assert process.current_department_id == org.dept_a.id

    def test_creator_owner_and_responsible_editor(self, new_process, org):
        process = new_process(responsible_id=org.bruno.id)
        roles = {
            p.user_id: p.role
            for p in ProcessParticipant.query.filter_by(process_id=process.id, is_active=True)
            if p.user_id is not None
        }
        assert roles == {org.alice.id: "owner", org.bruno.id: "editor"}


# ═════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════

class TestUpdate:
    def test_edit_fields(self, new_process, org):
        process = new_process()
        result = update_process(process.id, {
            "description": "Nova descrição",
            "priority": "high",
            "central_de_compras": "CC-77",
        }, org.alice)
        assert result.description == "Nova descrição"
        assert result.priority == "high"
        assert result.central_de_compras == "CC-77"
        assert Notification.query.filter_by(event="process_updated").count() == 1

    def test_change_responsible_restamps_since(self, new_process, org):
        process = new_process()
        since = as_utc(process.responsible_since)
        result = update_process(process.id, {"responsible_id": org.bruno.id}, org.alice)
        assert result.responsible_id == org.bruno.id
        assert as_utc(result.responsible_since) >= since
        assert get_visible_process(process.id, org.bruno).id == process.id

    def test_same_responsible_keeps_since(self, new_process, org):
        process = new_process()
        since = process.responsible_since
        result = update_process(process.id, {"responsible_id": org.alice.id}, org.alice)
        assert result.responsible_since == since

    def test_cancel_then_reopen(self, new_process, org):
        process = new_process()
        assert update_process(process.id, {"status": "canceled"}, org.alice).status == "canceled"
        assert update_process(process.id, {"status": "draft"}, org.alice).status == "draft"

    def test_completed_cannot_be_set_manually(self, new_process, org):
        process = new_process()
        with pytest.raises(StateError):
            update_process(process.id, {"status": "completed"}, org.alice)

    def test_unknown_status(self, new_process, org):
        process = new_process()
        with pytest.raises(ValidationError):
            update_process(process.id, {"status": "archived"}, org.alice)

    def test_past_deadline_derives_overdue(self, new_process, org):
        process = new_process()
        yesterday = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        assert update_process(process.id, {"deadline": yesterday}, org.alice).status == "overdue"

    def test_pbdoc_conflict(self, new_process, org):
        new_process("PBDOC-1")
        second = new_process("PBDOC-2")
        with pytest.raises(ConflictError):
            update_process(second.id, {"pbdoc_number": "PBDOC-1"}, org.alice)

    def test_invisible_user_gets_not_found(self, new_process, org):
        process = new_process()
        with pytest.raises(NotFoundError):
            update_process(process.id, {"priority": "low"}, org.bruno)


# ═════════════════════════════════════════════════════════════════════════
# LIST
# ═════════════════════════════════════════════════════════════════════════

class TestList:
    def test_only_visible(self, new_process, org):
        mine = new_process("PBDOC-A")
        theirs = new_process("PBDOC-B", acting_user=org.bruno, responsible_id=org.bruno.id,
                             current_department_id=org.dept_b.id)
        alice_ids = {p.id for p in list_visible_processes(org.alice)}
        admin_ids = {p.id for p in list_visible_processes(org.admin)}
        assert alice_ids == {mine.id}
        assert admin_ids == {mine.id, theirs.id}

    def test_filters_combine(self, new_process, org):
        new_process("PBDOC-2026-001", priority="high")
        new_process("PBDOC-2026-002", priority="low")
        new_process("OUTRO-003", priority="high")
        filters = ProcessFilter.from_args({"pbdoc_number": "2026", "priority": "high"})
        items = list_visible_processes(org.admin, filters)
        assert [p.pbdoc_number for p in items] == ["PBDOC-2026-001"]

    def test_pagination_and_total(self, new_process, org):
        for i in range(5):
            new_process(f"PBDOC-{i}")
        items, total = list_visible_processes_page(
            org.admin, ProcessFilter.from_args({"limit": "2", "offset": "1"}),
        )
        assert total == 5
        assert len(items) == 2

    def test_limit_clamped(self):
        assert ProcessFilter.from_args({"limit": "999999"}).limit == MAX_LIMIT
        assert ProcessFilter.from_args({"limit": "abc"}).limit == 200

    def test_invalid_status_filter(self):
        with pytest.raises(ValidationError):
            ProcessFilter.from_args({"status": "nope"})

    def test_include_deleted_only_for_admin(self, new_process, org):
        process = new_process()
        soft_delete_process(process.id, org.admin)
        filters = ProcessFilter.from_args({"include_deleted": "true"})
        assert process.id in {p.id for p in list_visible_processes(org.admin, filters)}
        assert list_visible_processes(org.alice, filters) == []


# ═════════════════════════════════════════════════════════════════════════
# TRASH
# ═════════════════════════════════════════════════════════════════════════

def _snapshot(process):
    data = process.to_dict()
    for key in ("deleted_at", "deleted_by"):
        data.pop(key)
    return data


class TestTrash:
    def test_soft_delete_and_restore_keep_fields(self, new_process, org):
        process = new_process()
        first = process.steps.order_by(None).order_by(ProcessStep.sequence).first()
        complete_step(first.id, org.alice)
        before = _snapshot(db.session.get(Process, process.id))

        soft_delete_process(process.id, org.admin)
        deleted = db.session.get(Process, process.id)
        assert deleted.deleted_at is not None
        assert deleted.deleted_by == org.admin.id
        assert _snapshot(deleted) == before
        with pytest.raises(NotFoundError):
            get_visible_process(process.id, org.admin)
        assert [p.id for p in list_deleted_processes(org.admin)] == [process.id]

        restored = restore_process(process.id, org.admin)
        assert restored.deleted_at is None
        assert restored.deleted_by is None
        assert _snapshot(restored) == before

    def test_delete_is_admin_only(self, new_process, org):
        process = new_process()
        with pytest.raises(AuthorizationError):
            soft_delete_process(process.id, org.alice)
        assert db.session.get(Process, process.id).deleted_at is None

    def test_trash_listing_admin_only(self, org):
        with pytest.raises(AuthorizationError):
            list_deleted_processes(org.alice)

    def test_restore_requires_trash(self, new_process, org):
        process = new_process()
        with pytest.raises(StateError):
            restore_process(process.id, org.admin)

    def test_double_delete_not_found(self, new_process, org):
        process = new_process()
        soft_delete_process(process.id, org.admin)
        with pytest.raises(NotFoundError):
            soft_delete_process(process.id, org.admin)

    def test_permanent_delete_requires_trash(self, new_process, org):
        process = new_process()
        with pytest.raises(StateError):
            permanently_delete_process(process.id, org.admin)
        assert db.session.get(Process, process.id) is not None

    def test_permanent_delete_removes_children(self, new_process, org):
        process = new_process()
        pid = process.id
        soft_delete_process(pid, org.admin)
        permanently_delete_process(pid, org.admin)
        assert db.session.get(Process, pid) is None
        assert ProcessStep.query.filter_by(process_id=pid).count() == 0
        assert ProcessParticipant.query.filter_by(process_id=pid).count() == 0

    def test_permanent_delete_admin_only(self, new_process, org):
        process = new_process()
        soft_delete_process(process.id, org.admin)
        with pytest.raises(AuthorizationError):
            permanently_delete_process(process.id, org.alice)

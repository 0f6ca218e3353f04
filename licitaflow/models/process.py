"""
Licitaflow — Bidding Process Tracker
Process domain models.

Models:
    - Process:             a bidding process identified by its PBDOC number
    - ProcessStep:         one departmental checkpoint in the process flow
    - ProcessParticipant:  visibility grant for a user or a whole department

Architecture:
    Process ──1:N──▶ ProcessStep          (ordered by sequence)
    Process ──1:N──▶ ProcessParticipant   (is_active gates visibility)
    Process ──N:1──▶ Department           (current custody)

Lifecycle states:
    Process:      draft → in_progress → completed
                  (overdue derived from deadline, canceled set explicitly)
    ProcessStep:  pending → completed | completed_rejected   (both terminal)
"""

from datetime import datetime, timezone

from licitaflow.models import db
from licitaflow.models.soft_delete import TrashMixin


# ── Constants ────────────────────────────────────────────────────────────────

PROCESS_STATUSES = {"draft", "in_progress", "completed", "canceled", "overdue"}

PROCESS_PRIORITIES = {"low", "medium", "high"}

STEP_STATES = {"pending", "completed", "completed_rejected"}

PARTICIPANT_ROLES = {"viewer", "editor", "owner"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

STEP_TRANSITIONS = {
    "pending":            ["completed", "completed_rejected"],
    "completed":          [],
    "completed_rejected": [],
}

# Status changes a user may request directly. completed/overdue are only
# ever derived by the status controller.
MANUAL_STATUS_TRANSITIONS = {
    "draft":       ["in_progress", "canceled"],
    "in_progress": ["canceled"],
    "overdue":     ["canceled"],
    "completed":   [],
    "canceled":    ["draft", "in_progress"],
}


def validate_step_transition(old_state, new_state):
    """Return True if ProcessStep state transition is valid."""
    return new_state in STEP_TRANSITIONS.get(old_state, [])


def validate_manual_status_transition(old_status, new_status):
    """Return True if a user-requested Process status change is valid."""
    return new_status in MANUAL_STATUS_TRANSITIONS.get(old_status, [])


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Process
# ═════════════════════════════════════════════════════════════════════════════


class Process(TrashMixin, db.Model):
    """
    Bidding process.

    ``updated_at`` is stamped by the service layer on workflow mutations;
    it has no ``onupdate`` hook so that moving a process to the trash and
    back leaves it untouched.
    """

    __tablename__ = "processes"

    id = db.Column(db.Integer, primary_key=True)
    pbdoc_number = db.Column(db.String(60), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    modality_id = db.Column(
        db.Integer, db.ForeignKey("bidding_modalities.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    source_id = db.Column(
        db.Integer, db.ForeignKey("resource_sources.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    responsible_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    responsible_since = db.Column(db.DateTime(timezone=True), nullable=True)
    current_department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="Department currently holding custody",
    )
    central_de_compras = db.Column(
        db.String(60), nullable=True,
        comment="Process number at the central purchasing office",
    )
    priority = db.Column(db.String(10), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    return_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','in_progress','completed','canceled','overdue')",
            name="ck_process_status",
        ),
        db.CheckConstraint(
            "priority IN ('low','medium','high')",
            name="ck_process_priority",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    steps = db.relationship(
        "ProcessStep", backref="process", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProcessStep.sequence",
    )
    participants = db.relationship(
        "ProcessParticipant", backref="process", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProcessParticipant.added_at",
    )
    modality = db.relationship("BiddingModality", foreign_keys=[modality_id])
    source = db.relationship("ResourceSource", foreign_keys=[source_id])
    responsible = db.relationship("User", foreign_keys=[responsible_id])
    current_department = db.relationship("Department", foreign_keys=[current_department_id])

    def touch(self):
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "pbdoc_number": self.pbdoc_number,
            "description": self.description,
            "modality_id": self.modality_id,
            "modality": self.modality.name if self.modality else None,
            "source_id": self.source_id,
            "source": self.source.code if self.source else None,
            "responsible_id": self.responsible_id,
            "responsible": self.responsible.full_name if self.responsible else None,
            "responsible_since": _iso(self.responsible_since),
            "current_department_id": self.current_department_id,
            "current_department": self.current_department.name if self.current_department else None,
            "central_de_compras": self.central_de_compras,
            "priority": self.priority,
            "status": self.status,
            "deadline": _iso(self.deadline),
            "return_comments": self.return_comments,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
            "deleted_by": self.deleted_by,
            "step_count": self.steps.count(),
            "completed_step_count": self.steps.filter(ProcessStep.state != "pending").count(),
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<Process {self.id}: {self.pbdoc_number} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ProcessStep
# ═════════════════════════════════════════════════════════════════════════════


class ProcessStep(db.Model):
    """
    Departmental checkpoint. Completing the first pending step hands custody
    to the department of the next one.

    ``state`` records the outcome explicitly: a rejected-but-approved step is
    ``completed_rejected``; ``observations`` holds the user's text verbatim.
    """

    __tablename__ = "process_steps"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sequence = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(300), nullable=False)
    phase = db.Column(db.String(50), default="")
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False,
    )
    state = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | completed | completed_rejected",
    )
    observations = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "state IN ('pending','completed','completed_rejected')",
            name="ck_process_step_state",
        ),
        db.UniqueConstraint("process_id", "sequence", name="uq_process_step_sequence"),
    )

    department = db.relationship("Department", foreign_keys=[department_id])
    completed_by_user = db.relationship("User", foreign_keys=[completed_by])

    @property
    def is_completed(self):
        return self.state != "pending"

    @property
    def is_rejected(self):
        return self.state == "completed_rejected"

    def to_dict(self):
        return {
            "id": self.id,
            "process_id": self.process_id,
            "sequence": self.sequence,
            "step_name": self.step_name,
            "phase": self.phase,
            "department_id": self.department_id,
            "department": self.department.name if self.department else None,
            "state": self.state,
            "is_completed": self.is_completed,
            "is_rejected": self.is_rejected,
            "observations": self.observations,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "due_date": _iso(self.due_date),
        }

    def __repr__(self):
        return f"<ProcessStep {self.id}: {self.process_id}#{self.sequence} [{self.state}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. ProcessParticipant
# ═════════════════════════════════════════════════════════════════════════════


class ProcessParticipant(db.Model):
    """
    Visibility grant on a process.

    ``user_id`` set   → grant for that user; ``department_id`` records the
                        user's department when the grant was made.
    ``user_id`` NULL  → grant for every user of ``department_id``.
    Deactivating a row revokes access but keeps the history.
    """

    __tablename__ = "process_participants"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="viewer", comment="viewer | editor | owner")
    added_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint("role IN ('viewer','editor','owner')", name="ck_participant_role"),
        db.CheckConstraint(
            "user_id IS NOT NULL OR department_id IS NOT NULL",
            name="ck_participant_target",
        ),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "process_id": self.process_id,
            "user_id": self.user_id,
            "user": self.user.full_name if self.user else None,
            "department_id": self.department_id,
            "role": self.role,
            "added_at": _iso(self.added_at),
            "is_active": self.is_active,
        }

    def __repr__(self):
        target = f"user={self.user_id}" if self.user_id else f"dept={self.department_id}"
        return f"<ProcessParticipant {self.id}: {self.process_id} {target} [{self.role}]>"

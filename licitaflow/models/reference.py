"""
Licitaflow — Bidding Process Tracker
Reference / lookup models.

Models:
    - Department:            organizational unit that holds custody of processes
    - BiddingModality:       legal procedure type; carries the default deadline
    - ModalityStepTemplate:  ordered step flow instantiated for each new process
    - ResourceSource:        funding source code
    - AppSetting:            admin-tunable numeric setting (e.g. monthly goal)

Architecture:
    BiddingModality ──1:N──▶ ModalityStepTemplate ──N:1──▶ Department
"""

from datetime import datetime, timezone

from licitaflow.models import db


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


class BiddingModality(db.Model):
    """
    Bidding procedure type (Pregão Eletrônico, Concorrência, Dispensa, ...).

    ``deadline_days`` is the number of business days granted to a new
    process of this modality; 0 means no automatic deadline.
    """

    __tablename__ = "bidding_modalities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    deadline_days = db.Column(
        db.Integer, nullable=False, default=0,
        comment="Business days until the process deadline",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint("deadline_days >= 0", name="ck_modality_deadline_days"),
    )

    step_templates = db.relationship(
        "ModalityStepTemplate", backref="modality", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ModalityStepTemplate.sequence",
    )

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "deadline_days": self.deadline_days,
            "step_count": self.step_templates.count(),
        }
        if include_steps:
            result["steps"] = [t.to_dict() for t in self.step_templates]
        return result

    def __repr__(self):
        return f"<BiddingModality {self.id}: {self.name}>"


class ModalityStepTemplate(db.Model):
    """One step of a modality's flow; copied into ProcessStep on process creation."""

    __tablename__ = "modality_step_templates"

    id = db.Column(db.Integer, primary_key=True)
    modality_id = db.Column(
        db.Integer, db.ForeignKey("bidding_modalities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sequence = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(300), nullable=False)
    phase = db.Column(db.String(50), default="", comment="Iniciação | Preparação | Execução | Finalização")
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False,
    )
    time_limit_days = db.Column(
        db.Integer, nullable=True,
        comment="Business days allotted to this step (NULL = no step due date)",
    )

    __table_args__ = (
        db.UniqueConstraint("modality_id", "sequence", name="uq_step_template_sequence"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "modality_id": self.modality_id,
            "sequence": self.sequence,
            "step_name": self.step_name,
            "phase": self.phase,
            "department_id": self.department_id,
            "time_limit_days": self.time_limit_days,
        }

    def __repr__(self):
        return f"<ModalityStepTemplate {self.modality_id}#{self.sequence}: {self.step_name[:40]}>"


class ResourceSource(db.Model):
    __tablename__ = "resource_sources"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.Text, default="")

    def to_dict(self):
        return {"id": self.id, "code": self.code, "description": self.description}

    def __repr__(self):
        return f"<ResourceSource {self.id}: {self.code}>"


class AppSetting(db.Model):
    """Named integer setting editable by administrators."""

    __tablename__ = "app_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Integer, nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"key": self.key, "value": self.value}

    def __repr__(self):
        return f"<AppSetting {self.key}={self.value}>"

"""
Licitaflow — Bidding Process Tracker
Notification domain model.

Models:
    - Notification: persisted workflow event with read tracking
"""

from datetime import datetime, timezone

from licitaflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_EVENTS = {
    "process_created",
    "process_updated",
    "step_completed",
    "step_rejected",
    "process_transferred",
    "process_returned",
    "process_deleted",
    "process_restored",
    "participant_added",
    "process_overdue",
}


class Notification(db.Model):
    """
    In-app notification entity.

    ``recipient_id`` NULL means broadcast to every user who can see the
    process (or everybody, for events without a process).
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    event = db.Column(db.String(40), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    process_id = db.Column(
        db.Integer, db.ForeignKey("processes.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True,
    )
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True,
    )

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "event": self.event,
            "title": self.title,
            "message": self.message,
            "process_id": self.process_id,
            "department_id": self.department_id,
            "recipient_id": self.recipient_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.event} {self.title[:40]}>"

"""
Auth Models — application users.

Users belong to exactly one department. The department drives which
processes an ordinary user may see and act on; the ``admin`` role has a
global visibility override that is checked in
``licitaflow.services.participation_service`` and nowhere else.
"""

from datetime import datetime, timezone

from licitaflow.models import db


USER_ROLES = {"common", "admin"}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="common", comment="common | admin")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint("role IN ('common','admin')", name="ck_user_role"),
    )

    department = db.relationship("Department", foreign_keys=[department_id])

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "department_id": self.department_id,
            "department": self.department.name if self.department else None,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username} [{self.role}]>"

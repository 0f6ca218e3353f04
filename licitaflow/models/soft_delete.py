"""
Trash support for processes.

A trashed row keeps every column and relationship; only ``deleted_at``
and ``deleted_by`` are set. Listings, lookups and aggregates read from
``query_live()``; the admin trash view reads ``query_trash()``.
"""

from datetime import datetime, timezone

from licitaflow.models import db


class TrashMixin:
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by = db.Column(db.Integer, nullable=True, default=None, comment="User who trashed the row")

    def move_to_trash(self, user_id):
        self.deleted_at = datetime.now(timezone.utc)
        self.deleted_by = user_id

    def restore_from_trash(self):
        self.deleted_at = None
        self.deleted_by = None

    @property
    def in_trash(self):
        return self.deleted_at is not None

    @classmethod
    def query_live(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def query_trash(cls):
        return cls.query.filter(cls.deleted_at.isnot(None))

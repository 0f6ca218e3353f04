"""
Lookup and transaction helpers shared by the workflow services.

    get_or_raise(model, pk)            → instance or NotFoundError
    require_reference(model, pk, fld)  → instance or ValidationError
    get_active_process(pk)             → Process not in the trash, or NotFoundError
    commit_and_dispatch(notifs)        → single commit, then listener fan-out

A missing foreign reference in *input* is a ValidationError (the caller
sent bad data); a missing *target* of the operation is a NotFoundError.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from licitaflow.core.exceptions import NotFoundError, ValidationError
from licitaflow.models import db
from licitaflow.models.process import Process

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def require_reference(model, pk, field):
    """Resolve a foreign-key value from user input."""
    if pk is None or pk == "":
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        pk = int(pk)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    obj = db.session.get(model, pk)
    if obj is None:
        raise ValidationError(
            f"{field}={pk} does not reference an existing {model.__name__}",
            details={field: "not found"},
        )
    return obj


def get_active_process(process_id):
    process = db.session.get(Process, process_id)
    if process is None or process.deleted_at is not None:
        raise NotFoundError(resource="Process", resource_id=process_id)
    return process


def commit_and_dispatch(notifications=()):
    """Commit the unit of work; roll back and re-raise on database errors."""
    from licitaflow.services.notification import NotificationService

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Commit failed; transaction rolled back")
        raise
    NotificationService.dispatch([n for n in notifications if n is not None])

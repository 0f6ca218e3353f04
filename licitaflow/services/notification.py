"""
Licitaflow — Bidding Process Tracker
Notification Service.

The workflow's event sink. ``publish`` records a Notification row inside
the caller's transaction (no commit here); after the caller commits it
hands the same rows to ``dispatch``, which fans them out to in-process
listeners (e.g. a websocket bridge). Listener failures are logged and
never reach the workflow caller.
"""

import logging

from licitaflow.models import db
from licitaflow.models.notification import NOTIFICATION_EVENTS, Notification

logger = logging.getLogger(__name__)

_listeners = []


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Publish / dispatch ────────────────────────────────────────────────

    @staticmethod
    def publish(event, *, title, message="", process_id=None, department_id=None,
                recipient_id=None):
        """
        Stage a notification in the current session.

        Returns:
            The pending Notification instance (not yet committed).
        """
        if event not in NOTIFICATION_EVENTS:
            raise ValueError(f"Unknown notification event: {event}")
        notif = Notification(
            event=event,
            title=title,
            message=message,
            process_id=process_id,
            department_id=department_id,
            recipient_id=recipient_id,
        )
        db.session.add(notif)
        return notif

    @staticmethod
    def subscribe(listener):
        """Register ``listener(notification_dict)``; called after each commit."""
        if listener not in _listeners:
            _listeners.append(listener)
        return listener

    @staticmethod
    def unsubscribe(listener):
        if listener in _listeners:
            _listeners.remove(listener)

    @staticmethod
    def dispatch(notifications):
        """Deliver committed notifications to listeners, fire-and-forget."""
        for notif in notifications:
            payload = notif.to_dict()
            for listener in list(_listeners):
                try:
                    listener(payload)
                except Exception:
                    logger.exception(
                        "Notification listener failed event=%s notification_id=%s",
                        notif.event, notif.id,
                    )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user, process_ids=None, unread_only=False, limit=50, offset=0):
        """
        Notifications addressed to ``user`` or broadcast, newest first.

        Args:
            process_ids: ids of processes the user can see; broadcast rows
                tied to other processes are hidden. ``None`` = no filter.
        """
        q = _visible_query(user, process_ids)
        if unread_only:
            q = q.filter(Notification.is_read.is_(False))
        total = q.count()
        items = q.order_by(Notification.created_at.desc(), Notification.id.desc()) \
            .offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(user, process_ids=None):
        return _visible_query(user, process_ids).filter(Notification.is_read.is_(False)).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user, process_ids=None):
        """Mark a single visible notification as read; returns None if not visible."""
        notif = _visible_query(user, process_ids).filter(Notification.id == notification_id).first()
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user, process_ids=None):
        items = _visible_query(user, process_ids).filter(Notification.is_read.is_(False)).all()
        for notif in items:
            notif.mark_read()
        db.session.commit()
        return len(items)


def _visible_query(user, process_ids):
    q = Notification.query.filter(
        (Notification.recipient_id == user.id) | (Notification.recipient_id.is_(None))
    )
    if process_ids is not None:
        q = q.filter(
            (Notification.process_id.is_(None)) | (Notification.process_id.in_(process_ids))
        )
    return q

"""
Innovation Review Portal
Notification Service.

Creates one in-app notification per recipient user and answers the
"my notifications" queries. Writes use ``flush`` so a notification is
committed together with the workflow change that caused it.
"""

from datetime import datetime, timezone

from ideaportal.core.exceptions import NotFoundError
from ideaportal.models import db
from ideaportal.models.notification import Notification
from ideaportal.services.permission_service import role_holder_ids


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(*, recipient_ids, title, message="", category="system",
               severity="info", entity_type="", entity_id=None, exclude=None):
        """
        Create one notification per recipient (duplicates and ``exclude`` skipped).

        Returns:
            List of created Notification instances (flushed, not committed).
        """
        skip = set(exclude or ())
        notifications = []
        for rid in dict.fromkeys(recipient_ids):
            if rid is None or rid in skip:
                continue
            notif = Notification(
                recipient_id=rid,
                title=title,
                message=message,
                category=category,
                severity=severity,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.flush()
        return notifications

    @staticmethod
    def notify_role(role_name, **kwargs):
        """Notify every active holder of ``role_name``."""
        return NotificationService.notify(recipient_ids=role_holder_ids(role_name), **kwargs)

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False):
        """Query of a user's notifications, newest first."""
        q = Notification.query.filter_by(recipient_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(Notification.created_at.desc(), Notification.id.desc())

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(recipient_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != user_id:
            raise NotFoundError("Notification", notification_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.flush()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all of a user's notifications as read. Returns the count."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        return count

"""
Smart Clearance
Notification Service.

Central service for creating and querying in-app notifications.
Lifecycle, comment and escalation events call ``notify_safely`` so a failed
notification never blocks the operation that triggered it.
"""

import logging

from clearance.models import db
from clearance.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient, title, message="", category="request", severity="info",
               request_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            request_id=request_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, recipients, title, message="", category="request", severity="info",
                  request_id=None):
        """
        Send one notification per recipient in a single commit.

        Returns:
            List of created Notification instances.
        """
        notifications = []
        for r in dict.fromkeys(recipients):
            notif = Notification(
                recipient=r,
                title=title,
                message=message,
                category=category,
                severity=severity,
                request_id=request_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(recipient=recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient):
        return Notification.query.filter_by(recipient=recipient, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif


def notify_safely(recipients, title, message="", **kwargs):
    """Best-effort broadcast: failures are rolled back and logged, never raised."""
    recipients = [r for r in recipients if r]
    if not recipients:
        return []
    try:
        return NotificationService.broadcast(
            recipients=recipients, title=title, message=message, **kwargs,
        )
    except Exception as exc:
        db.session.rollback()
        logger.warning("Notification dispatch failed (%s): %s", title, exc)
        return []

"""Customer notifications for repair lifecycle and payment events.

Delivery is fire-and-forget: `notify` is called after the triggering state
change has committed, and a failing emitter is logged, never raised.
"""
from __future__ import annotations
import logging
from flask import current_app, has_app_context
from marina import get_db
from marina.models.notification import RepairNotification

logger = logging.getLogger(__name__)


class NotificationEmitter:
    def emit(self, user_id: int, kind: str, title: str, message: str, booking_id: str) -> None:
        raise NotImplementedError


class DatabaseNotificationEmitter(NotificationEmitter):
    """Stores in-app notifications; an email/push relay reads them from there."""

    def emit(self, user_id: int, kind: str, title: str, message: str, booking_id: str) -> None:
        session = get_db()
        session.add(RepairNotification(
            user_id=user_id, type=kind, title=title, message=message, repair_booking_id=booking_id,
        ))
        session.commit()


def notify(user_id: int, kind: str, title: str, message: str, booking_id: str) -> bool:
    emitter = current_app.extensions.get('marina.notifier') if has_app_context() else None
    if emitter is None:
        return False
    try:
        emitter.emit(user_id, kind, title, message, booking_id)
        return True
    except Exception:
        get_db().rollback()
        logger.warning('Notification %s for repair %s failed', kind, booking_id, exc_info=True)
        return False

__all__ = ['NotificationEmitter', 'DatabaseNotificationEmitter', 'notify']

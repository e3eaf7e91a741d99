"""
Notification Service
Fire-and-forget notification and worker activity records attached to
booking lifecycle transitions. They are informational only: failures are
logged and never block the operation that triggered them.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Notification, WorkerActivity

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> Notification:
    """Insert a notification row. Raises on failure; see notify() for the best-effort form."""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        read=False,
    )
    db.add(notification)
    db.commit()
    return notification


def log_worker_activity(
    db: Session,
    worker_id: str,
    activity_type: str,
    message: str,
    metadata: Optional[dict] = None,
) -> WorkerActivity:
    """Insert a worker activity feed entry. Raises on failure."""
    activity = WorkerActivity(
        worker_id=worker_id,
        type=activity_type,
        message=message,
        details=metadata or {},
    )
    db.add(activity)
    db.commit()
    return activity


def notify(
    db: Session,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> bool:
    """
    Best-effort notification insert.

    Returns:
        True if the notification was stored, False otherwise
    """
    try:
        create_notification(db, user_id, notification_type, title, message, data)
        logger.info(f"🔔 {notification_type} notification created for {user_id}")
        return True
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ Failed to create {notification_type} notification for {user_id}: {e}")
        return False


def record_activity(
    db: Session,
    worker_id: str,
    activity_type: str,
    message: str,
    metadata: Optional[dict] = None,
) -> bool:
    """Best-effort worker activity insert"""
    try:
        log_worker_activity(db, worker_id, activity_type, message, metadata)
        return True
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ Failed to log {activity_type} activity for worker {worker_id}: {e}")
        return False


def format_naira(amount: Optional[float]) -> str:
    """₦10,000 style display amount"""
    return f"₦{(amount or 0):,.0f}"

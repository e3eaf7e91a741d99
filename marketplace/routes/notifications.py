from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..domain.jobs.repository import JobRepository
from ..errors import NotFound
from ..models import Notification, Profile

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    read: bool
    created_at: Optional[datetime] = None


@router.get("", response_model=list[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Most recent notifications for the current user"""
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


@router.get("/unread-count")
async def get_unread_count(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.read.is_(False))
        .count()
    )
    return {"unread_count": count}


@router.get("/pending-applications")
async def get_pending_applications_count(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Pending applications across the client's open jobs"""
    return {"count": JobRepository.count_pending_applications(db, current_user.id)}


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")

    notification.read = True
    db.commit()
    return {"success": True}


@router.post("/mark-all-read")
async def mark_all_read(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark every unread notification as read"""
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return {"success": True, "updated": updated}

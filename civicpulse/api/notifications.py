from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..infrastructure.database import get_db
from ..domain.errors import CivicPulseError
from ..domain.models import SessionContext, NotificationResponse, MarkReadRequest
from ..domain.services.notification_service import NotificationService
from .deps import get_current_session, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=50),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    The caller's most recent notifications, newest first.
    Listing does not mark anything read; use POST /read for that.
    """
    try:
        return NotificationService(db).list_recent(session.user_id, limit=limit)
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch notifications")


@router.get("/unread-count")
def get_unread_count(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    try:
        return {"unread": NotificationService(db).unread_count(session.user_id)}
    except CivicPulseError as e:
        raise http_error(e, "Failed to count notifications")


@router.post("/read")
def mark_notifications_read(
    body: MarkReadRequest,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Acknowledge notifications. Without ids, every unread notification is marked read.
    """
    try:
        updated = NotificationService(db).mark_read(session.user_id, body.ids)
        return {"updated": updated}
    except CivicPulseError as e:
        raise http_error(e, "Failed to update notifications")

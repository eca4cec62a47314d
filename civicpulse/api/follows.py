from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..domain.errors import CivicPulseError
from ..domain.models import SessionContext, FollowResponse
from ..domain.services.engagement_service import EngagementService
from .deps import get_current_session, get_optional_session, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/reports/{report_id}/follow", response_model=FollowResponse)
def get_follow_status(
    report_id: UUID,
    viewer: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db)
):
    """
    Follower count, plus whether the caller follows the report.
    """
    try:
        engagement = EngagementService(db)
        report = engagement.reports.get(report_id, viewer)
        return FollowResponse(
            report_id=report.id,
            following=engagement.is_following(report.id, viewer.user_id) if viewer else False,
            follower_count=engagement.follower_count(report.id),
        )
    except CivicPulseError as e:
        raise http_error(e, "Failed to get follow status")


@router.post("/reports/{report_id}/follow", response_model=FollowResponse)
def follow_report(
    report_id: UUID,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Follow a report. Following twice is a no-op.
    """
    try:
        count = EngagementService(db).follow(report_id, session)
        return FollowResponse(report_id=report_id, following=True, follower_count=count)
    except CivicPulseError as e:
        raise http_error(e, "Failed to update follow status")


@router.delete("/reports/{report_id}/follow", response_model=FollowResponse)
def unfollow_report(
    report_id: UUID,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Stop following a report.
    """
    try:
        count = EngagementService(db).unfollow(report_id, session)
        return FollowResponse(report_id=report_id, following=False, follower_count=count)
    except CivicPulseError as e:
        raise http_error(e, "Failed to update follow status")

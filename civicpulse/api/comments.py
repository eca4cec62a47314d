"""
Comments API router for community updates on reports.

Provides endpoints for:
- Getting comments on a report (newest first)
- Adding comments to a report
- Counting comments
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..infrastructure import models
from ..domain.errors import CivicPulseError
from ..domain.models import SessionContext, CommentCreate, CommentResponse
from ..domain.services.engagement_service import EngagementService
from .deps import get_current_session, get_optional_session, check_rate_limit, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


def to_response(comment: models.Comment) -> CommentResponse:
    author = comment.author
    return CommentResponse(
        id=comment.id,
        report_id=comment.report_id,
        user_id=comment.user_id,
        username=(author.display_name or author.username) if author else "Anonymous",
        avatar_url=author.avatar_url if author else None,
        content=comment.content,
        created_at=comment.created_at
    )


@router.get("/reports/{report_id}/comments", response_model=List[CommentResponse])
def get_comments(
    report_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    viewer: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db)
):
    """
    Get comments for a report, newest first.
    """
    try:
        comments = EngagementService(db).list_comments(report_id, limit=limit, offset=offset, viewer=viewer)
        return [to_response(c) for c in comments]
    except CivicPulseError as e:
        raise http_error(e, "Failed to get comments")


@router.post("/reports/{report_id}/comments", response_model=CommentResponse, status_code=201)
def add_comment(
    report_id: UUID,
    comment: CommentCreate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Add a comment to a report (requires authentication).
    Max 500 characters, 5 comments per minute per user.
    """
    check_rate_limit(f"comment:{session.user_id}", max_requests=5, window_seconds=60)
    try:
        new_comment = EngagementService(db).add_comment(report_id, session, comment.content)
        return to_response(new_comment)
    except CivicPulseError as e:
        raise http_error(e, "Failed to post comment")


@router.get("/reports/{report_id}/comments/count")
def get_comment_count(
    report_id: UUID,
    viewer: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db)
):
    """
    Number of comments on a report.
    """
    try:
        engagement = EngagementService(db)
        report = engagement.reports.get(report_id, viewer)
        return {"report_id": report.id, "count": engagement.comment_count(report.id)}
    except CivicPulseError as e:
        raise http_error(e, "Failed to get comment count")

"""
Profile and admin moderation endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from ..infrastructure.database import get_db
from ..domain.errors import CivicPulseError
from ..domain.models import SessionContext, ProfileResponse, BanRequest, ReportResponse
from ..domain.services.profile_service import ProfileService
from ..domain.services.report_service import ReportService
from .deps import get_admin_session, http_error
from .reports import serialize_reports

router = APIRouter()
admin_router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{user_id}", response_model=ProfileResponse)
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db)
):
    try:
        return ProfileService(db).get_profile(user_id)
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch profile")


@router.get("/{user_id}/stats")
def get_user_stats(
    user_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Points and report count for the profile page.
    """
    try:
        service = ProfileService(db)
        user = service.get_profile(user_id)
        return {
            "user_id": user.id,
            "points": user.points,
            "reports_count": service.report_count(user.id),
        }
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch profile stats")


# =============================================================================
# Admin
# =============================================================================

@admin_router.get("/users", response_model=List[ProfileResponse])
def list_users(
    session: SessionContext = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    try:
        return ProfileService(db).list_profiles(session)
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch users")


@admin_router.patch("/users/{user_id}/ban", response_model=ProfileResponse)
def ban_user(
    user_id: UUID,
    body: BanRequest,
    session: SessionContext = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Ban or unban a user. Admin accounts cannot be banned.
    """
    try:
        return ProfileService(db).set_banned(user_id, body.banned, session)
    except CivicPulseError as e:
        raise http_error(e, "Failed to update user")


@admin_router.get("/reports", response_model=List[ReportResponse])
def list_all_reports(
    session: SessionContext = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Every report including hidden ones, newest first.
    """
    try:
        reports = ReportService(db).list_feed(viewer=session, limit=500, include_hidden=True)
        return serialize_reports(db, reports)
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch reports")

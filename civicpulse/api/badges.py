from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List
import logging

from ..infrastructure.database import get_db
from ..domain.errors import CivicPulseError
from ..domain.models import BadgeCatalogEntry, BadgeResponse
from ..domain.services.badge_service import BadgeService, badge_catalog
from ..domain.services.profile_service import ProfileService
from .deps import http_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[BadgeCatalogEntry])
def get_all_badges():
    """
    Every badge that can be earned, with its threshold.
    """
    return badge_catalog()


@router.get("/user/{user_id}", response_model=List[BadgeResponse])
def get_user_badges(
    user_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Badges a user has earned, oldest first.
    """
    try:
        ProfileService(db).get_profile(user_id)
        service = BadgeService(db)
        return [BadgeResponse(**service.describe(b)) for b in service.list_badges(user_id)]
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch user badges")

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from enum import Enum

# ============================================================================
# ENUMS
# ============================================================================

class ReportCategory(str, Enum):
    INFRASTRUCTURE = "Infrastructure"
    SANITATION = "Sanitation"
    SAFETY = "Safety"
    OTHER = "Other"


class ReportStatus(str, Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"


# Display order of the status timeline
STATUS_STEPS: List[ReportStatus] = [
    ReportStatus.OPEN,
    ReportStatus.ACKNOWLEDGED,
    ReportStatus.IN_PROGRESS,
    ReportStatus.CLOSED,
]


class BadgeType(str, Enum):
    FIRST_REPORT = "FIRST_REPORT"
    HELPER = "HELPER"
    RESOLVER = "RESOLVER"


class NotificationType(str, Enum):
    COMMENT = "COMMENT"
    STATUS_CHANGE = "STATUS_CHANGE"
    BADGE = "BADGE"
    SYSTEM = "SYSTEM"


# ============================================================================
# SESSION
# ============================================================================

class SessionContext(BaseModel):
    """Caller identity resolved from an access token, passed to every mutation"""
    user_id: UUID
    is_admin: bool = False
    is_banned: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_user(cls, user) -> "SessionContext":
        return cls(user_id=user.id, is_admin=bool(user.is_admin), is_banned=bool(user.is_banned))


# ============================================================================
# REQUEST DTOs
# ============================================================================

class ReportStatusUpdate(BaseModel):
    """Request DTO for changing a report's status"""
    status: ReportStatus


class ReportVisibilityUpdate(BaseModel):
    """Request DTO for hiding/unhiding a report (admin only)"""
    hidden: bool


class CommentCreate(BaseModel):
    """Request DTO for creating a comment"""
    content: str = Field(..., max_length=500)


class MarkReadRequest(BaseModel):
    """Acknowledge notifications; omit ids to mark everything read"""
    ids: Optional[List[UUID]] = None


class BanRequest(BaseModel):
    banned: bool


# ============================================================================
# RESPONSE DTOs
# ============================================================================

class ProfileResponse(BaseModel):
    """Public profile (excludes email and auth fields)"""
    id: UUID
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    points: int
    is_admin: bool
    is_banned: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimelineStep(BaseModel):
    status: ReportStatus
    index: int
    reached: bool
    current: bool


class ReportResponse(BaseModel):
    """Response DTO for a report"""
    id: UUID
    user_id: UUID
    title: str
    description: str
    category: ReportCategory
    status: ReportStatus
    latitude: float
    longitude: float
    image_url: Optional[str] = None
    is_hidden: bool
    created_at: datetime

    # Author info for the feed card
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    follower_count: int = 0
    comment_count: int = 0
    status_index: int = 0

    model_config = ConfigDict(from_attributes=True)


class ReportDetailResponse(ReportResponse):
    """Report with timeline and the viewer's follow state"""
    timeline: List[TimelineStep] = []
    is_following: bool = False
    can_edit_status: bool = False


class FollowResponse(BaseModel):
    report_id: UUID
    following: bool
    follower_count: int


class CommentResponse(BaseModel):
    """Response DTO for a comment"""
    id: UUID
    report_id: UUID
    user_id: UUID
    username: str
    avatar_url: Optional[str] = None
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BadgeResponse(BaseModel):
    id: UUID
    user_id: UUID
    badge_type: BadgeType
    label: str
    description: str
    awarded_at: datetime


class BadgeCatalogEntry(BaseModel):
    badge_type: BadgeType
    label: str
    description: str
    threshold: int

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Dict, List, Set
from uuid import UUID
from dataclasses import dataclass
import logging

from .interfaces import IBadgeAwarder
from .common import commit
from .notification_service import NotificationService
from ..models import BadgeType, NotificationType, ReportStatus, BadgeCatalogEntry
from ...infrastructure import models

logger = logging.getLogger(__name__)

# ============================================================================
# POINTS & BADGE CONFIGURATION
# ============================================================================

POINTS_SYSTEM = {
    'report_submitted': 10,
    'comment_posted': 2,
    'badge_awarded': 25,
}

BADGE_RULES = {
    BadgeType.FIRST_REPORT: {
        'counter': 'reports',
        'threshold': 1,
        'label': 'First Report',
        'description': 'Submitted 1st issue',
    },
    BadgeType.HELPER: {
        'counter': 'comments',
        'threshold': 5,
        'label': 'Top Helper',
        'description': '5 comments posted',
    },
    BadgeType.RESOLVER: {
        'counter': 'resolved_reports',
        'threshold': 2,
        'label': 'Resolver',
        'description': '2 confirmed fixes',
    },
}


@dataclass(frozen=True)
class ActivityCounts:
    reports: int = 0
    comments: int = 0
    resolved_reports: int = 0


# ============================================================================
# CORE CALCULATION FUNCTIONS
# ============================================================================

def eligible_badges(counts: ActivityCounts) -> Set[BadgeType]:
    """Badge types earned by these activity counters."""
    return {
        badge_type
        for badge_type, rule in BADGE_RULES.items()
        if getattr(counts, rule['counter']) >= rule['threshold']
    }


def add_points(user: models.User, action: str) -> int:
    """Credit the points for an action to a profile; returns the new total."""
    user.points = (user.points or 0) + POINTS_SYSTEM[action]
    return user.points


def badge_catalog() -> List[BadgeCatalogEntry]:
    return [
        BadgeCatalogEntry(
            badge_type=badge_type,
            label=rule['label'],
            description=rule['description'],
            threshold=rule['threshold'],
        )
        for badge_type, rule in BADGE_RULES.items()
    ]


# ============================================================================
# BADGE SERVICE CLASS
# ============================================================================

class BadgeService(IBadgeAwarder):
    """
    Awards badges from activity counts observed at evaluation time.
    Badges are never revoked, so a user who falls below a threshold keeps theirs.
    """

    def __init__(self, db: Session):
        self.db = db

    def activity_counts(self, user_id: UUID) -> ActivityCounts:
        # Pending writes of the caller's transaction must be visible to the counts
        self.db.flush()

        reports = self.db.query(models.Report).filter(
            models.Report.user_id == user_id
        ).count()
        comments = self.db.query(models.Comment).filter(
            models.Comment.user_id == user_id
        ).count()
        resolved = self.db.query(models.Report).filter(
            models.Report.user_id == user_id,
            models.Report.status == ReportStatus.CLOSED.value
        ).count()

        return ActivityCounts(reports=reports, comments=comments, resolved_reports=resolved)

    def evaluate(self, user_id: UUID, commit_now: bool = True) -> List[BadgeType]:
        """
        Grant every badge the user qualifies for but does not hold yet.

        Returns:
            The newly granted badge types (empty if none)
        """
        user = self.db.query(models.User).filter(models.User.id == user_id).first()
        if not user:
            logger.warning(f"Badge evaluation skipped, user {user_id} not found")
            return []

        counts = self.activity_counts(user_id)
        held = self.held_badges(user_id)

        granted = []
        notifications = NotificationService(self.db)
        for badge_type in sorted(eligible_badges(counts), key=lambda b: b.value):
            if badge_type.value in held:
                continue
            try:
                with self.db.begin_nested():
                    self.db.add(models.UserBadge(user_id=user_id, badge_type=badge_type.value))
            except IntegrityError:
                # Granted by a concurrent request since held_badges() ran
                logger.info(f"User {user_id} already holds {badge_type.value}")
                continue
            add_points(user, 'badge_awarded')
            notifications.create(
                user_id,
                NotificationType.BADGE,
                f"You earned the {BADGE_RULES[badge_type]['label']} badge!",
                "/profile",
                commit_now=False,
            )
            granted.append(badge_type)

        if granted:
            logger.info(f"User {user_id} earned badges: {[b.value for b in granted]}")
        if commit_now:
            commit(self.db, "award badges")
        return granted

    def held_badges(self, user_id: UUID) -> Set[str]:
        return {
            row[0] for row in self.db.query(models.UserBadge.badge_type).filter(
                models.UserBadge.user_id == user_id
            ).all()
        }

    def list_badges(self, user_id: UUID) -> List[models.UserBadge]:
        return self.db.query(models.UserBadge).filter(
            models.UserBadge.user_id == user_id
        ).order_by(models.UserBadge.awarded_at.asc()).all()

    def describe(self, badge: models.UserBadge) -> Dict:
        rule = BADGE_RULES[BadgeType(badge.badge_type)]
        return {
            'id': badge.id,
            'user_id': badge.user_id,
            'badge_type': badge.badge_type,
            'label': rule['label'],
            'description': rule['description'],
            'awarded_at': badge.awarded_at,
        }

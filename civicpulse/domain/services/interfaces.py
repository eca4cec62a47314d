from abc import ABC, abstractmethod
from typing import Iterator, List, Optional
from uuid import UUID

from ..models import SessionContext, ReportStatus, NotificationType, BadgeType


class IReportStore(ABC):
    """
    Report lifecycle: creation, lookup, status and visibility.
    """
    @abstractmethod
    async def create(self, session: Optional[SessionContext], title: str, description: str,
                     category: str, latitude: float, longitude: float, image=None):
        pass

    @abstractmethod
    def get(self, report_id: UUID, viewer: Optional[SessionContext] = None):
        pass

    @abstractmethod
    def update_status(self, report_id: UUID, new_status: ReportStatus, session: Optional[SessionContext]):
        pass

    @abstractmethod
    def set_visibility(self, report_id: UUID, hidden: bool, session: Optional[SessionContext]):
        pass


class IEngagementTracker(ABC):
    """
    Follows and comments on reports.
    """
    @abstractmethod
    def follow(self, report_id: UUID, session: Optional[SessionContext]) -> int:
        pass

    @abstractmethod
    def unfollow(self, report_id: UUID, session: Optional[SessionContext]) -> int:
        pass

    @abstractmethod
    def follower_count(self, report_id: UUID) -> int:
        pass

    @abstractmethod
    def add_comment(self, report_id: UUID, session: Optional[SessionContext], text: str):
        pass

    @abstractmethod
    def iter_comments(self, report_id: UUID, batch_size: int = 50) -> Iterator:
        pass


class INotificationRelay(ABC):
    """
    Per-user in-app notifications.
    """
    @abstractmethod
    def create(self, owner_id: UUID, type: NotificationType, message: str, link: Optional[str] = None):
        pass

    @abstractmethod
    def list_recent(self, user_id: UUID, limit: int = 10) -> List:
        pass

    @abstractmethod
    def mark_read(self, user_id: UUID, notification_ids: Optional[List[UUID]] = None) -> int:
        """Acknowledge notifications. Listing never marks anything read."""
        pass


class IBadgeAwarder(ABC):
    """
    Grants badges from activity counters.
    """
    @abstractmethod
    def evaluate(self, user_id: UUID) -> List[BadgeType]:
        pass

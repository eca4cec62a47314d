"""Tests for follows and comments."""
import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from civicpulse.domain.errors import NotFoundError, PermissionDeniedError, RemoteError, ValidationError
from civicpulse.domain.models import NotificationType
from civicpulse.domain.services.engagement_service import EngagementService
from civicpulse.domain.services.report_service import ReportService
from civicpulse.infrastructure import models


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def report(test_db, alice, session_for):
    return asyncio.run(ReportService(test_db).create(
        session_for(alice), "Overflowing bin", "Not collected for a week",
        "Sanitation", 28.6, 77.2
    ))


def comment_notifications(db, user):
    return db.query(models.Notification).filter(
        models.Notification.user_id == user.id,
        models.Notification.type == NotificationType.COMMENT.value
    ).all()


class TestFollow:

    def test_follow_is_idempotent(self, test_db, report, bob, session_for):
        engagement = EngagementService(test_db)
        assert engagement.follow(report.id, session_for(bob)) == 1
        assert engagement.follow(report.id, session_for(bob)) == 1

        rows = test_db.query(models.Follow).filter(models.Follow.report_id == report.id).count()
        assert rows == 1
        assert engagement.is_following(report.id, bob.id)

    def test_follow_then_unfollow_restores_count(self, test_db, report, alice, bob, session_for):
        engagement = EngagementService(test_db)
        engagement.follow(report.id, session_for(alice))
        before = engagement.follower_count(report.id)

        assert engagement.follow(report.id, session_for(bob)) == before + 1
        assert engagement.unfollow(report.id, session_for(bob)) == before
        assert not engagement.is_following(report.id, bob.id)

    def test_unfollow_without_follow_is_harmless(self, test_db, report, bob, session_for):
        assert EngagementService(test_db).unfollow(report.id, session_for(bob)) == 0

    def test_follower_counts_grouped(self, test_db, report, alice, bob, session_for):
        engagement = EngagementService(test_db)
        engagement.follow(report.id, session_for(alice))
        engagement.follow(report.id, session_for(bob))
        assert engagement.follower_counts([report.id]) == {report.id: 2}
        assert engagement.follower_counts([]) == {}

    def test_banned_user_cannot_follow(self, test_db, report, make_user, session_for):
        mallory = make_user("mallory", is_banned=True)
        with pytest.raises(PermissionDeniedError):
            EngagementService(test_db).follow(report.id, session_for(mallory))

    def test_cannot_follow_missing_report(self, test_db, bob, session_for):
        with pytest.raises(NotFoundError):
            EngagementService(test_db).follow(uuid.uuid4(), session_for(bob))

    def test_follower_can_unfollow_hidden_report(self, test_db, report, bob, make_user, session_for):
        admin = make_user("admin", is_admin=True)
        engagement = EngagementService(test_db)
        engagement.follow(report.id, session_for(bob))
        ReportService(test_db).set_visibility(report.id, True, session_for(admin))

        assert engagement.unfollow(report.id, session_for(bob)) == 0
        rows = test_db.query(models.Follow).filter(models.Follow.report_id == report.id).count()
        assert rows == 0

    def test_cannot_unfollow_missing_report(self, test_db, bob, session_for):
        with pytest.raises(NotFoundError):
            EngagementService(test_db).unfollow(uuid.uuid4(), session_for(bob))

    def test_racing_follow_is_absorbed(self, test_db, report, bob, session_for, monkeypatch):
        engagement = EngagementService(test_db)
        engagement.follow(report.id, session_for(bob))

        # Both requests saw "not following" before either committed
        monkeypatch.setattr(EngagementService, "is_following", lambda self, report_id, user_id: False)
        assert engagement.follow(report.id, session_for(bob)) == 1

    def test_storage_failure_becomes_remote_error(self, test_db, report, bob, session_for, monkeypatch):
        session = session_for(bob)
        report_id = report.id

        def failing_commit():
            raise OperationalError("INSERT INTO follows", {}, Exception("database is locked"))

        with monkeypatch.context() as m:
            m.setattr(test_db, "commit", failing_commit)
            with pytest.raises(RemoteError):
                EngagementService(test_db).follow(report_id, session)

        assert EngagementService(test_db).follower_count(report_id) == 0


class TestComments:

    def test_empty_comment_rejected(self, test_db, report, bob, session_for):
        engagement = EngagementService(test_db)
        for text in ["", "   ", None]:
            with pytest.raises(ValidationError):
                engagement.add_comment(report.id, session_for(bob), text)
        assert engagement.comment_count(report.id) == 0

    def test_overlong_comment_rejected(self, test_db, report, bob, session_for):
        with pytest.raises(ValidationError):
            EngagementService(test_db).add_comment(report.id, session_for(bob), "x" * 501)

    def test_new_comment_appears_first(self, test_db, report, alice, bob, session_for):
        engagement = EngagementService(test_db)
        engagement.add_comment(report.id, session_for(alice), "Still there today")
        before = len(engagement.list_comments(report.id))

        comment = engagement.add_comment(report.id, session_for(bob), "  fixed?  ")

        comments = engagement.list_comments(report.id)
        assert len(comments) == before + 1
        assert comments[0].id == comment.id
        assert comments[0].content == "fixed?"

    def test_comment_notifies_report_owner(self, test_db, report, alice, bob, session_for):
        EngagementService(test_db).add_comment(report.id, session_for(bob), "fixed?")

        notes = comment_notifications(test_db, alice)
        assert len(notes) == 1
        assert "bob" in notes[0].message
        assert notes[0].link == f"/reports/{report.id}"
        assert comment_notifications(test_db, bob) == []

    def test_owner_comment_does_not_notify_self(self, test_db, report, alice, session_for):
        EngagementService(test_db).add_comment(report.id, session_for(alice), "Update: still broken")
        assert comment_notifications(test_db, alice) == []

    def test_commenter_earns_points(self, test_db, report, bob, session_for):
        EngagementService(test_db).add_comment(report.id, session_for(bob), "Saw this too")
        test_db.refresh(bob)
        assert bob.points == 2

    def test_banned_user_cannot_comment(self, test_db, report, make_user, session_for):
        mallory = make_user("mallory", is_banned=True)
        with pytest.raises(PermissionDeniedError):
            EngagementService(test_db).add_comment(report.id, session_for(mallory), "spam")


class TestIterComments:

    def test_iterates_in_batches_newest_first(self, test_db, report, bob, session_for):
        engagement = EngagementService(test_db)
        for i in range(5):
            engagement.add_comment(report.id, session_for(bob), f"comment {i}")

        expected = [c.id for c in engagement.list_comments(report.id)]
        assert [c.id for c in engagement.iter_comments(report.id, batch_size=2)] == expected

    def test_iteration_is_restartable(self, test_db, report, bob, session_for):
        engagement = EngagementService(test_db)
        for i in range(3):
            engagement.add_comment(report.id, session_for(bob), f"comment {i}")

        first = [c.id for c in engagement.iter_comments(report.id, batch_size=2)]
        second = [c.id for c in engagement.iter_comments(report.id, batch_size=2)]
        assert first == second
        assert len(first) == 3

    def test_is_lazy(self, test_db, report, bob, session_for):
        engagement = EngagementService(test_db)
        for i in range(3):
            engagement.add_comment(report.id, session_for(bob), f"comment {i}")

        iterator = engagement.iter_comments(report.id, batch_size=1)
        assert next(iterator).content == engagement.list_comments(report.id)[0].content

    def test_missing_report_fails_before_iteration(self, test_db):
        with pytest.raises(NotFoundError):
            EngagementService(test_db).iter_comments(uuid.uuid4())

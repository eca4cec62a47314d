"""Tests for the session manager: Google sign-in, rotation, sign-out and listeners."""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from civicpulse.core.config import settings
from civicpulse.domain.errors import AuthError, RemoteError
from civicpulse.domain.services.auth_service import AuthService, SessionEvent
from civicpulse.infrastructure import models

GOOGLE_USER = {
    "google_id": "google-123",
    "email": "alice@example.com",
    "name": "Alice Smith",
    "picture": "https://example.com/alice.png",
}


@pytest.fixture
def auth():
    return AuthService()


@pytest.fixture
def events(auth):
    received = []
    unsubscribe = auth.subscribe(lambda event, session: received.append((event, session)))
    yield received
    unsubscribe()


def sign_in(auth, db, google_data=GOOGLE_USER):
    with patch.object(auth, "verify_google_token", new=AsyncMock(return_value=google_data)):
        return asyncio.run(auth.sign_in_with_google("id-token", db))


class TestGoogleSignIn:

    def test_first_sign_in_creates_profile(self, test_db, auth):
        tokens = sign_in(auth, test_db)

        user = test_db.query(models.User).filter(models.User.google_id == "google-123").one()
        assert user.username == "alicesmith"
        assert user.avatar_url == GOOGLE_USER["picture"]
        assert tokens["token_type"] == "bearer"
        assert auth.current_session(tokens["access_token"], test_db).user_id == user.id

    def test_second_sign_in_reuses_profile(self, test_db, auth):
        sign_in(auth, test_db)
        sign_in(auth, test_db)
        assert test_db.query(models.User).count() == 1

    def test_links_existing_profile_by_email(self, test_db, auth, make_user):
        alice = make_user("alice")
        sign_in(auth, test_db)

        test_db.refresh(alice)
        assert alice.google_id == "google-123"
        assert test_db.query(models.User).count() == 1

    def test_usernames_stay_unique(self, test_db, auth):
        sign_in(auth, test_db)
        sign_in(auth, test_db, {**GOOGLE_USER, "google_id": "google-456", "email": "other@example.com"})

        names = sorted(u.username for u in test_db.query(models.User).all())
        assert names == ["alicesmith", "alicesmith_1"]

    def test_rejected_token_raises(self, test_db, auth):
        with pytest.raises(AuthError):
            sign_in(auth, test_db, None)


class TestVerifyGoogleToken:

    def _client(self, mock_cls, response=None, error=None):
        client = AsyncMock()
        if error is not None:
            client.get.side_effect = error
        else:
            client.get.return_value = response
        mock_cls.return_value.__aenter__.return_value = client
        return client

    def test_valid_token(self, auth):
        response = MagicMock(status_code=200)
        response.json.return_value = {"sub": "google-123", "email": "alice@example.com", "aud": "x"}
        with patch("civicpulse.domain.services.auth_service.httpx.AsyncClient") as mock_cls:
            self._client(mock_cls, response=response)
            data = asyncio.run(auth.verify_google_token("id-token"))
        assert data["google_id"] == "google-123"
        assert data["email"] == "alice@example.com"

    def test_wrong_audience(self, auth, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "civicpulse-client")
        response = MagicMock(status_code=200)
        response.json.return_value = {"sub": "google-123", "aud": "someone-else"}
        with patch("civicpulse.domain.services.auth_service.httpx.AsyncClient") as mock_cls:
            self._client(mock_cls, response=response)
            assert asyncio.run(auth.verify_google_token("id-token")) is None

    def test_rejected_by_google(self, auth):
        with patch("civicpulse.domain.services.auth_service.httpx.AsyncClient") as mock_cls:
            self._client(mock_cls, response=MagicMock(status_code=400))
            assert asyncio.run(auth.verify_google_token("id-token")) is None

    def test_google_unreachable(self, auth):
        with patch("civicpulse.domain.services.auth_service.httpx.AsyncClient") as mock_cls:
            self._client(mock_cls, error=httpx.ConnectError("connection refused"))
            with pytest.raises(RemoteError):
                asyncio.run(auth.verify_google_token("id-token"))


class TestSessions:

    def test_missing_or_invalid_access_token(self, test_db, auth):
        with pytest.raises(AuthError):
            auth.current_session(None, test_db)
        with pytest.raises(AuthError):
            auth.current_session("not-a-jwt", test_db)

    def test_refresh_token_is_not_an_access_token(self, test_db, auth, make_user):
        tokens = auth.create_tokens(make_user("alice"), test_db)
        with pytest.raises(AuthError):
            auth.current_session(tokens["refresh_token"], test_db)

    def test_session_flags_come_from_profile(self, test_db, auth, make_user):
        alice = make_user("alice")
        tokens = auth.create_tokens(alice, test_db)

        alice.is_banned = True
        test_db.commit()

        session = auth.current_session(tokens["access_token"], test_db)
        assert session.is_banned is True
        assert session.is_admin is False

    def test_refresh_rotates_token(self, test_db, auth, make_user):
        tokens = auth.create_tokens(make_user("alice"), test_db)

        rotated = auth.refresh(tokens["refresh_token"], test_db)
        assert rotated["refresh_token"] != tokens["refresh_token"]

        with pytest.raises(AuthError):
            auth.refresh(tokens["refresh_token"], test_db)
        assert auth.refresh(rotated["refresh_token"], test_db)["access_token"]

    def test_expired_refresh_token(self, test_db, auth, make_user):
        tokens = auth.create_tokens(make_user("alice"), test_db)
        stored = test_db.query(models.RefreshToken).one()
        stored.expires_at = datetime.utcnow() - timedelta(minutes=1)
        test_db.commit()

        with pytest.raises(AuthError):
            auth.refresh(tokens["refresh_token"], test_db)

    def test_sign_out_revokes_refresh_token(self, test_db, auth, make_user):
        tokens = auth.create_tokens(make_user("alice"), test_db)

        assert auth.sign_out(tokens["refresh_token"], test_db) is True
        with pytest.raises(AuthError):
            auth.refresh(tokens["refresh_token"], test_db)
        assert auth.sign_out("unknown-token", test_db) is False


class TestSessionListeners:

    def test_lifecycle_events(self, test_db, auth, events):
        tokens = sign_in(auth, test_db)
        tokens = auth.refresh(tokens["refresh_token"], test_db)
        auth.sign_out(tokens["refresh_token"], test_db)

        assert [event for event, _ in events] == [
            SessionEvent.SIGNED_IN,
            SessionEvent.TOKEN_REFRESHED,
            SessionEvent.SIGNED_OUT,
        ]
        user = test_db.query(models.User).one()
        assert all(session.user_id == user.id for _, session in events)

    def test_unsubscribe_stops_delivery(self, test_db, auth, make_user):
        received = []
        unsubscribe = auth.subscribe(lambda event, session: received.append(event))
        unsubscribe()

        tokens = auth.create_tokens(make_user("alice"), test_db)
        auth.refresh(tokens["refresh_token"], test_db)
        assert received == []

    def test_failing_listener_does_not_break_sign_out(self, test_db, auth, make_user):
        def broken(event, session):
            raise RuntimeError("listener failed")

        auth.subscribe(broken)
        tokens = auth.create_tokens(make_user("alice"), test_db)
        assert auth.sign_out(tokens["refresh_token"], test_db) is True

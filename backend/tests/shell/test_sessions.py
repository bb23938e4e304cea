"""Tests for the session authority."""

from datetime import datetime, timedelta, timezone

import pytest

from fitlog.core.errors import Unauthenticated
from fitlog.shell.sessions import SessionAuthority, generate_token


USER_ID = "0123456789abcdef0123456789abcdef"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self):
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    return SessionAuthority(clock=clock)


class TestGenerateToken:
    """Tests for generate_token."""

    def test_unique_tokens(self):
        """Each generated token is unique."""
        tokens = [generate_token() for _ in range(100)]
        assert len(set(tokens)) == 100

    def test_sufficient_length(self):
        assert len(generate_token()) >= 40


class TestSessionLifecycle:
    """Tests for create / resolve / destroy."""

    def test_resolve_after_create(self, sessions):
        token = sessions.create_session(USER_ID, "alice")
        session = sessions.resolve(token)
        assert session.user_id == USER_ID
        assert session.username == "alice"

    def test_multiple_sessions_per_user(self, sessions):
        """A user may hold several sessions at once."""
        first = sessions.create_session(USER_ID, "alice")
        second = sessions.create_session(USER_ID, "alice")
        assert first != second
        assert sessions.resolve(first).user_id == sessions.resolve(second).user_id

    def test_rejected_after_destroy(self, sessions):
        token = sessions.create_session(USER_ID, "alice")
        assert sessions.destroy(token) is True
        with pytest.raises(Unauthenticated):
            sessions.resolve(token)

    def test_destroy_is_idempotent(self, sessions):
        """Destroying twice (or an unknown token) does not raise."""
        token = sessions.create_session(USER_ID, "alice")
        sessions.destroy(token)
        assert sessions.destroy(token) is False
        assert sessions.destroy("never-issued") is False
        assert sessions.destroy(None) is False

    @pytest.mark.parametrize("token", [None, "", "bogus"])
    def test_unknown_tokens_rejected(self, sessions, token):
        with pytest.raises(Unauthenticated):
            sessions.resolve(token)


class TestExpiry:
    """Tests for the fixed session lifetime."""

    def test_valid_just_before_expiry(self, sessions, clock):
        token = sessions.create_session(USER_ID, "alice")
        clock.advance(hours=23, minutes=59)
        assert sessions.resolve(token).user_id == USER_ID

    def test_expired_after_24_hours(self, sessions, clock):
        """Expired tokens fail exactly like unknown ones."""
        token = sessions.create_session(USER_ID, "alice")
        clock.advance(hours=24)
        with pytest.raises(Unauthenticated) as expired:
            sessions.resolve(token)
        with pytest.raises(Unauthenticated) as unknown:
            sessions.resolve("bogus")
        assert expired.value.message == unknown.value.message

    def test_use_does_not_extend(self, sessions, clock):
        """Resolving a session does not renew it."""
        token = sessions.create_session(USER_ID, "alice")
        clock.advance(hours=20)
        sessions.resolve(token)
        clock.advance(hours=5)
        with pytest.raises(Unauthenticated):
            sessions.resolve(token)

    def test_custom_ttl(self, clock):
        sessions = SessionAuthority(ttl=timedelta(minutes=5), clock=clock)
        token = sessions.create_session(USER_ID, "alice")
        clock.advance(minutes=6)
        with pytest.raises(Unauthenticated):
            sessions.resolve(token)

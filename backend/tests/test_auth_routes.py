from types import SimpleNamespace

import pytest

from prodauth.api.v1 import admin as admin_routes
from prodauth.api.v1 import auth as auth_routes
from prodauth.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    LoginLockedError,
    ReplayDetectedError,
)
from prodauth.schemas.user import LogoutRequest, RefreshTokenRequest, UserLogin
from prodauth.services.abuse_tracker import AbuseTracker
from prodauth.services.audit_service import (
    LOGIN_FAILED,
    LOGIN_LOCKED,
    REFRESH_REPLAY_DETECTED,
    SESSIONS_REVOKED,
    audit_service,
)


def _request(host="10.1.1.1", agent="pytest-agent"):
    return SimpleNamespace(
        client=SimpleNamespace(host=host),
        headers={"user-agent": agent},
        state=SimpleNamespace(),
    )


@pytest.fixture
def tracker(monkeypatch):
    clock = SimpleNamespace(now=1_700_000_000.0)
    fresh = AbuseTracker(enabled=True, clock=lambda: clock.now)
    fresh.clock = clock
    monkeypatch.setattr(auth_routes, "abuse_tracker", fresh)
    monkeypatch.setattr(admin_routes, "abuse_tracker", fresh)
    return fresh


def _actions(db):
    return [event.action for event in audit_service.recent_events(db)]


def test_login_success_issues_tokens_and_clears_failures(db, make_user, tracker):
    user = make_user()
    tracker.record_failure(user.email, "10.1.1.1", "invalid_credentials")

    response = auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    assert response.access_token
    assert response.refresh_token
    assert response.user.email == user.email
    assert tracker.get_attempts(user.email, "10.1.1.1") == []


def test_wrong_password_records_failure_and_audits(db, make_user, tracker):
    user = make_user()

    with pytest.raises(InvalidCredentialsError):
        auth_routes.login(UserLogin(email=user.email, password="nope"), _request(), db)

    attempts = tracker.get_attempts(user.email, "10.1.1.1")
    assert len(attempts) == 1
    assert attempts[0].user_agent == "pytest-agent"
    assert _actions(db) == [LOGIN_FAILED]


def test_sixth_attempt_is_locked_even_with_right_password(db, make_user, tracker):
    user = make_user()
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth_routes.login(UserLogin(email=user.email, password="nope"), _request(), db)

    with pytest.raises(LoginLockedError) as exc_info:
        auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    assert exc_info.value.remaining_minutes == 15
    assert _actions(db)[0] == LOGIN_LOCKED

    # another origin is not affected
    response = auth_routes.login(
        UserLogin(email=user.email, password="s3cret-pass"), _request(host="10.1.1.2"), db
    )
    assert response.access_token

    tracker.clock.now += 15 * 60
    response = auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)
    assert response.access_token


def test_disabled_account_counts_as_failure(db, make_user, tracker):
    user = make_user(is_active=False)

    with pytest.raises(AuthenticationError) as exc_info:
        auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    assert exc_info.value.message == "User account is disabled"
    assert len(tracker.get_attempts(user.email, "10.1.1.1")) == 1


def test_missing_email_and_origin_are_tracked_as_unknown(db, tracker):
    with pytest.raises(InvalidCredentialsError):
        auth_routes.login(UserLogin(password="whatever"), SimpleNamespace(client=None, headers={}), db)

    assert len(tracker.get_attempts("unknown", "unknown")) == 1


def test_refresh_rotates_and_replay_is_audited(db, make_user, tracker):
    user = make_user()
    first = auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    rotated = auth_routes.refresh_token(RefreshTokenRequest(refresh_token=first.refresh_token), _request(), db)
    assert rotated.refresh_token != first.refresh_token
    assert rotated.user.id == user.id

    with pytest.raises(ReplayDetectedError):
        auth_routes.refresh_token(RefreshTokenRequest(refresh_token=first.refresh_token), _request(), db)

    events = audit_service.recent_events(db, action=REFRESH_REPLAY_DETECTED)
    assert len(events) == 1
    assert events[0].user_id == user.id

    with pytest.raises(AuthenticationError):
        auth_routes.refresh_token(RefreshTokenRequest(refresh_token=rotated.refresh_token), _request(), db)


def test_refresh_wraps_unexpected_errors(db, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(auth_routes.token_service, "refresh_session", broken)

    with pytest.raises(AuthenticationError) as exc_info:
        auth_routes.refresh_token(RefreshTokenRequest(refresh_token="x"), _request(), db)
    assert exc_info.value.message == "Unable to refresh session"


def test_logout_revokes_presented_family_only(db, make_user, tracker):
    user = make_user()
    laptop = auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)
    auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    result = auth_routes.logout(_request(), LogoutRequest(refresh_token=laptop.refresh_token), user, db)

    assert result["revoked_tokens"] == 1
    assert len(auth_routes.list_sessions(user, db)) == 1
    assert _actions(db)[0] == SESSIONS_REVOKED


def test_logout_everywhere(db, make_user, tracker):
    user = make_user()
    for _ in range(2):
        auth_routes.login(UserLogin(email=user.email, password="s3cret-pass"), _request(), db)

    assert auth_routes.revoke_all_sessions(_request(), user, db)["revoked_tokens"] == 2
    assert auth_routes.list_sessions(user, db) == []


def test_admin_tracker_routes(db, make_user, tracker):
    admin = make_user(email="admin@studio.test", role="admin")
    tracker.record_failure("a@studio.test", "10.0.0.1", "invalid_credentials")

    assert admin_routes.login_tracker_status(admin)["attempts"] == 1
    admin_routes.clear_login_lock("A@studio.test", "10.0.0.1", admin)
    assert admin_routes.login_tracker_status(admin)["attempts"] == 0

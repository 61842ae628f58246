"""Authentication routes"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from prodauth.core.database import get_db
from prodauth.config import settings
from prodauth.core.metrics import LOGIN_FAILURES, LOGIN_LOCKOUTS, REFRESH_REPLAYS
from prodauth.schemas.user import (
    UserLogin,
    TokenResponse,
    UserResponse,
    RefreshTokenRequest,
    LogoutRequest,
    SessionResponse,
)
from prodauth.services.abuse_tracker import abuse_tracker
from prodauth.services.audit_service import (
    audit_service,
    LOGIN_FAILED,
    LOGIN_LOCKED,
    REFRESH_REPLAY_DETECTED,
    SESSIONS_REVOKED,
)
from prodauth.services.user_service import user_service
from prodauth.services.token_service import token_service
from prodauth.api.deps import get_current_user, client_ip, user_agent
from prodauth.models.user import User
from prodauth.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    LoginLockedError,
    OriginThrottledError,
    ReplayDetectedError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_response(user: User, access_token: str, refresh_token: str) -> TokenResponse:
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - gate on failed attempts, verify password, issue a token pair

    Args:
        credentials: Email and password
        request: Incoming request (origin and user agent)
        db: Database session

    Returns:
        Access token, refresh token and user info
    """
    origin = client_ip(request)
    agent = user_agent(request)
    actor_key = credentials.email

    try:
        abuse_tracker.gate(actor_key, origin)
    except (LoginLockedError, OriginThrottledError) as exc:
        scope = "actor" if isinstance(exc, LoginLockedError) else "origin"
        LOGIN_LOCKOUTS.labels(scope).inc()
        logger.warning("Login rejected (%s lockout): origin=%s details=%s", scope, origin, exc.details)
        audit_service.safe_log_event(
            db,
            action=LOGIN_LOCKED,
            actor_key=actor_key or "unknown",
            ip_address=origin,
            user_agent=agent,
            metadata={"scope": scope, **exc.details},
        )
        raise

    try:
        if not actor_key:
            raise InvalidCredentialsError()
        user = user_service.authenticate_user(db, actor_key, credentials.password)
    except AuthenticationError as exc:
        attempts = abuse_tracker.record_failure(actor_key, origin, exc.message, agent)
        LOGIN_FAILURES.inc()
        audit_service.safe_log_event(
            db,
            action=LOGIN_FAILED,
            actor_key=actor_key or "unknown",
            target_type="auth",
            ip_address=origin,
            user_agent=agent,
            metadata={"reason": exc.message, "attempts": attempts},
        )
        raise

    abuse_tracker.clear(actor_key, origin)
    access_token, refresh_token, _ = token_service.issue_token_pair(
        db, user, ip_address=origin, user_agent=agent
    )
    return _token_response(user, access_token, refresh_token)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    req: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Rotate a refresh token

    Presenting an already-rotated token revokes every token of its login.
    """
    origin = client_ip(request)
    agent = user_agent(request)
    try:
        current_user, access_token, refresh_token_value = token_service.refresh_session(
            db, req.refresh_token, ip_address=origin, user_agent=agent
        )
    except ReplayDetectedError as exc:
        REFRESH_REPLAYS.inc()
        audit_service.safe_log_event(
            db,
            action=REFRESH_REPLAY_DETECTED,
            user_id=exc.owner_id,
            target_type="refresh_token_family",
            target_id=exc.family,
            ip_address=origin,
            user_agent=agent,
            metadata={"revoked_tokens": exc.revoked},
        )
        raise
    except AuthenticationError:
        raise
    except Exception:
        logger.exception("Unexpected error while refreshing session")
        raise AuthenticationError("Unable to refresh session")

    return _token_response(current_user, access_token, refresh_token_value)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - revoke the presented token's family, or every session

    Args:
        body: Optional refresh token and all_sessions flag
        current_user: Current authenticated user
        db: Database session
    """
    family = None
    if body and body.refresh_token and not body.all_sessions:
        family = token_service.family_of(body.refresh_token)

    revoked = token_service.logout(db, current_user.id, family)
    audit_service.safe_log_event(
        db,
        action=SESSIONS_REVOKED,
        user_id=current_user.id,
        target_type="refresh_token_family" if family else "user",
        target_id=family or str(current_user.id),
        ip_address=client_ip(request),
        metadata={"revoked_tokens": revoked},
    )

    return {
        "success": True,
        "message": "Logged out successfully",
        "revoked_tokens": revoked,
    }


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information"""
    return UserResponse.model_validate(current_user)


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active refresh tokens of the current user, newest first"""
    tokens = token_service.get_active_tokens(db, current_user.id)
    return [SessionResponse.model_validate(token) for token in tokens]


@router.delete("/sessions", status_code=status.HTTP_200_OK)
def revoke_all_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Sign out everywhere"""
    revoked = token_service.revoke_all(db, current_user.id)
    audit_service.safe_log_event(
        db,
        action=SESSIONS_REVOKED,
        user_id=current_user.id,
        target_type="user",
        target_id=str(current_user.id),
        ip_address=client_ip(request),
        metadata={"revoked_tokens": revoked, "all_sessions": True},
    )
    return {"success": True, "revoked_tokens": revoked}

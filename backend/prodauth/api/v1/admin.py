"""Admin routes - token hygiene, failed-login tracker and audit trail"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional

from prodauth.api.deps import client_ip, get_current_admin_user
from prodauth.core.database import get_db
from prodauth.models.user import User
from prodauth.schemas.audit import AuditEventResponse
from prodauth.services.abuse_tracker import abuse_tracker
from prodauth.services.audit_service import audit_service, SESSIONS_REVOKED, TOKENS_CLEANUP
from prodauth.services.token_service import token_service

router = APIRouter()


@router.post("/tokens/cleanup", status_code=status.HTTP_200_OK)
def cleanup_expired_tokens(
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Delete expired refresh tokens now instead of waiting for the scheduled job"""
    removed = token_service.cleanup_expired(db)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action=TOKENS_CLEANUP,
        target_type="refresh_token",
        ip_address=client_ip(request),
        metadata={"removed": removed},
    )
    return {"success": True, "removed": removed}


@router.delete("/users/{user_id}/sessions", status_code=status.HTTP_200_OK)
def revoke_user_sessions(
    user_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Administrative revocation of every refresh token of a user"""
    revoked = token_service.revoke_all(db, user_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action=SESSIONS_REVOKED,
        target_type="user",
        target_id=str(user_id),
        ip_address=client_ip(request),
        metadata={"revoked_tokens": revoked, "by_admin": True},
    )
    return {"success": True, "revoked_tokens": revoked}


@router.get("/login-tracker")
def login_tracker_status(
    current_user: User = Depends(get_current_admin_user),
):
    """Snapshot of this process's failed-login tracker"""
    return abuse_tracker.status()


@router.delete("/login-tracker", status_code=status.HTTP_200_OK)
def clear_login_lock(
    email: Optional[str] = Query(None),
    origin: Optional[str] = Query(None),
    current_user: User = Depends(get_current_admin_user),
):
    """Lift a lockout for one identity/origin pair"""
    abuse_tracker.clear(email, origin)
    return {"success": True}


@router.get("/audit", response_model=List[AuditEventResponse])
def list_audit_events(
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Recent security events, newest first"""
    events = audit_service.recent_events(db, action=action, limit=limit)
    return [AuditEventResponse.from_event(event) for event in events]

"""Audit service for security-relevant events."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from prodauth.models.audit import AuditEvent

logger = logging.getLogger(__name__)

LOGIN_FAILED = "login_failed"
LOGIN_LOCKED = "login_locked"
REFRESH_REPLAY_DETECTED = "refresh_replay_detected"
SESSIONS_REVOKED = "sessions_revoked"
TOKENS_CLEANUP = "tokens_cleanup"


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        action: str,
        user_id: Optional[int] = None,
        actor_key: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            user_id=user_id,
            actor_key=actor_key,
            action=action,
            target_type=target_type,
            target_id=target_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=str),
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def safe_log_event(db: Session, **kwargs: Any) -> Optional[AuditEvent]:
        """Audit from an error path: a failed audit write is logged, never raised."""
        try:
            return AuditService.log_event(db, **kwargs)
        except Exception as exc:
            db.rollback()
            logger.error("Failed to write audit event %s: %s", kwargs.get("action"), exc)
            return None

    @staticmethod
    def recent_events(db: Session, action: Optional[str] = None, limit: int = 100) -> List[AuditEvent]:
        query = db.query(AuditEvent)
        if action:
            query = query.filter(AuditEvent.action == action)
        return query.order_by(AuditEvent.id.desc()).limit(limit).all()


audit_service = AuditService()

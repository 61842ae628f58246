"""Audit event response schemas."""

import json
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field

from prodauth.models.audit import AuditEvent


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[int]
    actor_key: Optional[str] = None
    action: str
    target_type: Optional[str]
    target_id: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime]

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventResponse":
        try:
            metadata = json.loads(event.metadata_json or "{}")
        except json.JSONDecodeError:
            metadata = {"raw": event.metadata_json}
        return cls(
            id=event.id,
            user_id=event.user_id,
            actor_key=event.actor_key,
            action=event.action,
            target_type=event.target_type,
            target_id=event.target_id,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            metadata=metadata,
            created_at=event.created_at,
        )

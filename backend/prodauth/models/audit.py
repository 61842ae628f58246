"""Audit trail for security-relevant events."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from prodauth.core.database import Base


class AuditEvent(Base):
    """
    Immutable security event.

    Failed logins have no authenticated user, so the attempted identity is
    kept in actor_key instead of user_id.
    """

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_key = Column(String(255), nullable=True)
    action = Column(String(64), nullable=False)
    target_type = Column(String(64), nullable=True)
    target_id = Column(String(128), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="audit_events")

    __table_args__ = (
        Index("idx_audit_events_action", "action"),
        Index("idx_audit_events_created_at", "created_at"),
        Index("idx_audit_events_ip", "ip_address"),
    )

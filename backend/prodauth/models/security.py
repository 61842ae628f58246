"""Security-related persistence models."""

import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from prodauth.core.database import Base
from prodauth.core.security import naive_utc, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class RefreshToken(Base):
    """
    Refresh token record for rotation and replay detection.

    Every rotation of one login shares the same family. A consumed token
    (is_used) points at its successor through replaced_by_jti; presenting a
    consumed token again revokes the whole family.
    """

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=_new_id)
    jti = Column(String(128), unique=True, nullable=False)
    family = Column(String(64), nullable=False)
    token_hash = Column(String(255), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by_jti = Column(String(128), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_jti", "jti"),
        Index("idx_refresh_tokens_family_revoked", "family", "is_revoked"),
        Index("idx_refresh_tokens_user_revoked", "user_id", "is_revoked"),
    )

    def is_expired(self, now=None) -> bool:
        return (now or utcnow()) > naive_utc(self.expires_at)

    def __repr__(self):
        return (
            f"<RefreshToken(jti='{self.jti[:8]}...', family='{self.family[:8]}...', "
            f"user_id={self.user_id}, used={self.is_used}, revoked={self.is_revoked})>"
        )

"""User model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from prodauth.core.database import Base


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)
    # Global role: admin, director, artist, member. Only admin bypasses project grants.
    role = Column(String(20), default="member", nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True))

    # Relationships
    refresh_tokens = relationship("RefreshToken", cascade="all, delete-orphan", back_populates="user")
    project_permissions = relationship("ProjectPermission", cascade="all, delete-orphan", back_populates="user")
    audit_events = relationship("AuditEvent", back_populates="user")

    __table_args__ = (
        Index('idx_users_email', 'email'),
        Index('idx_users_role', 'role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

"""Project-scoped access grants"""

import enum

from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from prodauth.core.database import Base


class ProjectRole(str, enum.Enum):
    """Project roles, totally ordered VIEWER < CONTRIBUTOR < OWNER."""

    VIEWER = "viewer"
    CONTRIBUTOR = "contributor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, required: "ProjectRole") -> bool:
        return self.rank >= ProjectRole(required).rank


_ROLE_RANK = {
    ProjectRole.VIEWER: 1,
    ProjectRole.CONTRIBUTOR: 2,
    ProjectRole.OWNER: 3,
}


class ProjectPermission(Base):
    """Links a user to a project with one role; one grant per user per project."""

    __tablename__ = "project_permissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default=ProjectRole.VIEWER.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="project_permissions")
    project = relationship("Project")

    __table_args__ = (
        Index("uq_project_permissions_user_project", "user_id", "project_id", unique=True),
        Index("idx_project_permissions_project", "project_id"),
        Index("idx_project_permissions_user", "user_id"),
        CheckConstraint("role IN ('viewer', 'contributor', 'owner')", name="chk_project_role"),
    )

    @property
    def project_role(self) -> ProjectRole:
        return ProjectRole(self.role)

    def __repr__(self):
        return f"<ProjectPermission(user_id={self.user_id}, project_id={self.project_id}, role='{self.role}')>"

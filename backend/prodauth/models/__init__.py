"""Database models"""

from prodauth.models.user import User
from prodauth.models.security import RefreshToken
from prodauth.models.hierarchy import Project, Episode, Sequence, Shot, Asset, Version
from prodauth.models.permission import ProjectPermission, ProjectRole
from prodauth.models.audit import AuditEvent

__all__ = [
    "User",
    "RefreshToken",
    "Project",
    "Episode",
    "Sequence",
    "Shot",
    "Asset",
    "Version",
    "ProjectPermission",
    "ProjectRole",
    "AuditEvent",
]

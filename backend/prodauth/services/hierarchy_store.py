"""Read-only lookups over the project hierarchy and project grants."""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from prodauth.models.hierarchy import Asset, Episode, Project, Sequence, Shot, Version
from prodauth.models.permission import ProjectPermission


class HierarchyStore:
    """One query per method; every parent lookup returns None when the row is missing."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def episode_project_id(self, episode_id: int) -> Optional[int]:
        row = self.db.query(Episode.project_id).filter(Episode.id == episode_id).first()
        return row[0] if row else None

    def sequence_episode_id(self, sequence_id: int) -> Optional[int]:
        row = self.db.query(Sequence.episode_id).filter(Sequence.id == sequence_id).first()
        return row[0] if row else None

    def shot_sequence_id(self, shot_id: int) -> Optional[int]:
        row = self.db.query(Shot.sequence_id).filter(Shot.id == shot_id).first()
        return row[0] if row else None

    def asset_project_id(self, asset_id: int) -> Optional[int]:
        row = self.db.query(Asset.project_id).filter(Asset.id == asset_id).first()
        return row[0] if row else None

    def version_owner(self, version_id: int) -> Optional[Tuple[Optional[str], Optional[int]]]:
        """(entity_type, entity_id) of a version, or None if the version does not exist."""
        row = (
            self.db.query(Version.entity_type, Version.entity_id)
            .filter(Version.id == version_id)
            .first()
        )
        return (row[0], row[1]) if row else None

    def all_project_ids(self) -> List[int]:
        return [row[0] for row in self.db.query(Project.id).order_by(Project.id).all()]

    def grant(self, user_id: int, project_id: int) -> Optional[ProjectPermission]:
        return (
            self.db.query(ProjectPermission)
            .filter(ProjectPermission.user_id == user_id, ProjectPermission.project_id == project_id)
            .first()
        )

    def granted_project_ids(self, user_id: int) -> List[int]:
        rows = (
            self.db.query(ProjectPermission.project_id)
            .filter(ProjectPermission.user_id == user_id)
            .order_by(ProjectPermission.project_id)
            .all()
        )
        return [row[0] for row in rows]

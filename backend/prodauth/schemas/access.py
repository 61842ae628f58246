"""Project access check schemas"""

from typing import Optional

from pydantic import BaseModel, Field

from prodauth.models.permission import ProjectRole


class ParentAccessRequest(BaseModel):
    """Parent of an entity about to be created; the most general id given wins"""
    project_id: Optional[int] = Field(default=None, gt=0)
    episode_id: Optional[int] = Field(default=None, gt=0)
    sequence_id: Optional[int] = Field(default=None, gt=0)
    min_role: ProjectRole = ProjectRole.CONTRIBUTOR

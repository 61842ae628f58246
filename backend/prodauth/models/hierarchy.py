"""Project hierarchy models.

Only the columns needed to walk a child entity up to its owning project are
mapped here; the tracker's content fields live with the entity services.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from prodauth.core.database import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    episodes = relationship("Episode", back_populates="project", cascade="all, delete-orphan")
    assets = relationship("Asset", back_populates="project", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Project(id={self.id}, code='{self.code}')>"


class Episode(Base):
    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    project = relationship("Project", back_populates="episodes")
    sequences = relationship("Sequence", back_populates="episode", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_episodes_project", "project_id"),)


class Sequence(Base):
    __tablename__ = "sequences"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False)

    episode = relationship("Episode", back_populates="sequences")
    shots = relationship("Shot", back_populates="sequence", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_sequences_episode", "episode_id"),)


class Shot(Base):
    __tablename__ = "shots"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False)
    sequence_id = Column(Integer, ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False)

    sequence = relationship("Sequence", back_populates="shots")

    __table_args__ = (Index("idx_shots_sequence", "sequence_id"),)


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    project = relationship("Project", back_populates="assets")

    __table_args__ = (Index("idx_assets_project", "project_id"),)


class Version(Base):
    """A version attaches polymorphically to a project, episode, sequence, shot or asset."""

    __tablename__ = "versions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), nullable=False)
    entity_type = Column(String(20), nullable=True)
    entity_id = Column(Integer, nullable=True)

    __table_args__ = (Index("idx_versions_entity", "entity_id", "entity_type"),)

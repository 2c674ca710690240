from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.showcase.models import Base

if TYPE_CHECKING:
    from app.showcase.models import User
    from app.showcase.modules.feedback.models import Feedback


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TeamMember.id",
    )
    projects: Mapped[list["Project"]] = relationship(
        "Project",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        Index("idx_team_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(64), nullable=False, default="member")  # free text: leader, member, ...
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    team: Mapped[Team] = relationship("Team", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships", lazy="joined")


class SDG(Base):
    """Reference data: the 17 Sustainable Development Goals. Read-only at runtime."""

    __tablename__ = "sdgs"
    __table_args__ = (
        CheckConstraint("number BETWEEN 1 AND 17", name="ck_sdgs_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "name": self.name,
            "description": self.description,
            "color": self.color,
        }


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_team", "team_id"),
        Index("idx_projects_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    repository_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    demo_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    team: Mapped[Team] = relationship("Team", back_populates="projects")
    sdg_links: Mapped[list["ProjectSDG"]] = relationship(
        "ProjectSDG",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    media: Mapped[list["ProjectMedia"]] = relationship(
        "ProjectMedia",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectMedia.id",
    )
    feedback: Mapped[list["Feedback"]] = relationship(
        "Feedback",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ProjectSDG(Base):
    __tablename__ = "project_sdgs"
    __table_args__ = (
        UniqueConstraint("project_id", "sdg_id", name="uq_project_sdgs_project_sdg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    sdg_id: Mapped[int] = mapped_column(ForeignKey("sdgs.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    project: Mapped[Project] = relationship("Project", back_populates="sdg_links")
    sdg: Mapped[SDG] = relationship("SDG", lazy="joined")


class ProjectMedia(Base):
    __tablename__ = "project_media"
    __table_args__ = (
        CheckConstraint("media_type IN ('image', 'video')", name="ck_project_media_type"),
        Index("idx_project_media_project", "project_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    media_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    media_type: Mapped[str] = mapped_column(String(16), nullable=False)  # derived from the URL suffix
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    project: Mapped[Project] = relationship("Project", back_populates="media")

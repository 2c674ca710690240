"""
Read-side composition of the nested project shape.

Nothing here writes. Every entry point clears the read intent with the resolver
before it touches a project row, and every shape carries an `averageRating`
recomputed from the feedback rows at call time.
"""
from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.showcase.errors import NotFoundError
from app.showcase.modules.feedback.service import (
    attach_aggregate,
    average_ratings,
    feedback_to_dict,
    visible_feedback,
)
from app.showcase.rbac import Action, Identity, require
from app.showcase.utils import is_storable_int, isoformat

from .models import SDG, Project, ProjectSDG, Team, TeamMember


def _sdgs_of(project: Project) -> list[dict]:
    return [link.sdg.to_dict() for link in sorted(project.sdg_links, key=lambda link: link.sdg.number)]


def project_to_dict(project: Project, average: float | None) -> dict:
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "thumbnailUrl": project.thumbnail_url,
        "repositoryUrl": project.repository_url,
        "demoUrl": project.demo_url,
        "teamId": project.team_id,
        "createdAt": isoformat(project.created_at),
        "updatedAt": isoformat(project.updated_at),
        "averageRating": average,
        "sdgs": _sdgs_of(project),
        "mediaUrls": [m.media_url for m in project.media],
    }


def team_to_dict(team: Team) -> dict:
    return {
        "id": team.id,
        "name": team.name,
        "description": team.description,
        "createdAt": isoformat(team.created_at),
        "members": [
            {
                "id": m.user.id,
                "username": m.user.username,
                "firstName": m.user.first_name,
                "lastName": m.user.last_name,
                "role": m.role,
            }
            for m in team.members
        ],
    }


def _escape_like(term: str) -> str:
    """Search terms match literally; `%` and `_` are not wildcards."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _with_associations(stmt):
    return stmt.options(
        selectinload(Project.sdg_links),
        selectinload(Project.media),
        selectinload(Project.team),
    )


def get_project_detail(s: Session, identity: Identity, project_id: int) -> dict:
    """Project + sdgs + media + team with members + visible feedback."""
    require(identity, Action.READ_PROJECT)
    if not is_storable_int(project_id):
        raise NotFoundError("Project not found", project_id=project_id)
    project = s.execute(_with_associations(select(Project).where(Project.id == project_id))).scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found", project_id=project_id)

    out = attach_aggregate(s, project_to_dict(project, None))
    out["media"] = [{"url": m.media_url, "type": m.media_type} for m in project.media]
    out["team"] = team_to_dict(project.team)
    out["teamName"] = project.team.name
    out["teamDescription"] = project.team.description
    out["feedback"] = [feedback_to_dict(fb) for fb in visible_feedback(s, identity, project.id)]
    return out


def list_projects(
    s: Session,
    identity: Identity,
    *,
    sdg_number: int | None = None,
    search: str | None = None,
) -> list[dict]:
    """All projects, newest first, optionally filtered by SDG number or text."""
    require(identity, Action.READ_PROJECT)
    stmt = select(Project)
    if sdg_number is not None:
        tagged = (
            select(ProjectSDG.project_id)
            .join(SDG, SDG.id == ProjectSDG.sdg_id)
            .where(SDG.number == sdg_number)
        )
        stmt = stmt.where(Project.id.in_(tagged))
    if search:
        like = f"%{_escape_like(search)}%"
        stmt = stmt.where(
            or_(Project.title.ilike(like, escape="\\"), Project.description.ilike(like, escape="\\"))
        )
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())

    projects = s.execute(_with_associations(stmt)).scalars().all()
    averages = average_ratings(s, [p.id for p in projects])
    return [project_to_dict(p, averages.get(p.id)) for p in projects]


def list_member_projects(s: Session, identity: Identity) -> list[dict]:
    """Projects owned by any team the actor is a member of."""
    require(identity, Action.READ_PROJECT)
    team_ids = select(TeamMember.team_id).where(TeamMember.user_id == identity.user_id)
    stmt = (
        select(Project)
        .where(Project.team_id.in_(team_ids))
        .order_by(Project.created_at.desc(), Project.id.desc())
    )
    projects = s.execute(_with_associations(stmt)).scalars().all()
    averages = average_ratings(s, [p.id for p in projects])
    out = []
    for p in projects:
        item = project_to_dict(p, averages.get(p.id))
        item["teamName"] = p.team.name
        item["teamDescription"] = p.team.description
        out.append(item)
    return out


def list_sdgs(s: Session) -> list[dict]:
    return [sdg.to_dict() for sdg in s.execute(select(SDG).order_by(SDG.number)).scalars()]


def get_team_detail(s: Session, identity: Identity, team_id: int) -> dict:
    require(identity, Action.READ_PROJECT)
    team = s.get(Team, team_id) if is_storable_int(team_id) else None
    if team is None:
        raise NotFoundError("Team not found", team_id=team_id)
    out = team_to_dict(team)
    out["projectIds"] = [p.id for p in team.projects]
    return out

"""
Feedback service layer.

Creates append-only feedback rows, computes the per-project average rating on
every read, and filters rows by visibility before they leave the module.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.showcase.audit import record_event
from app.showcase.constants import MAX_RATING, MIN_RATING
from app.showcase.db import write_unit
from app.showcase.errors import NotFoundError, ValidationError
from app.showcase.models import User
from app.showcase.rbac import Action, FeedbackContext, Identity, Role, can_perform, require
from app.showcase.utils import clean_str, is_storable_int, isoformat

from .models import Feedback

logger = logging.getLogger(__name__)


def validate_feedback_payload(payload: dict) -> list[str]:
    """Validate feedback creation payload. Returns list of errors."""
    errors = []
    if not clean_str(payload.get("content")):
        errors.append("Content is required.")
    rating = payload.get("rating")
    if rating is None:
        errors.append("Rating is required.")
    elif isinstance(rating, bool) or not isinstance(rating, int):
        errors.append("Rating must be an integer.")
    elif not MIN_RATING <= rating <= MAX_RATING:
        errors.append(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")
    is_private = payload.get("isPrivate", False)
    if is_private is not None and not isinstance(is_private, bool):
        errors.append("isPrivate must be a boolean.")
    return errors


def create_feedback(s: Session, identity: Identity, project_id: int, payload: dict) -> Feedback:
    """Append a feedback row to a project."""
    from app.showcase.modules.projects.models import Project

    require(identity, Action.CREATE_FEEDBACK, message="Only faculty members can submit feedback")

    errors = validate_feedback_payload(payload)
    if errors:
        raise ValidationError("Invalid feedback", errors=errors)

    project = s.get(Project, project_id) if is_storable_int(project_id) else None
    if project is None:
        raise NotFoundError("Project not found", project_id=project_id)

    with write_unit(s):
        fb = Feedback(
            project_id=project.id,
            user_id=identity.user_id,
            content=clean_str(payload.get("content")),
            rating=payload["rating"],
            is_private=bool(payload.get("isPrivate") or False),
            created_at=datetime.utcnow(),
        )
        s.add(fb)
        s.flush()
        record_event(
            s,
            actor=identity,
            action="feedback.create",
            entity_type="Feedback",
            entity_id=str(fb.id),
            metadata={"project_id": project.id, "rating": fb.rating, "is_private": fb.is_private},
        )

    logger.info("Feedback %s stored for project %s by user %s", fb.id, project.id, identity.user_id)
    return fb


# ---------- Aggregation ----------


def average_ratings(s: Session, project_ids: Iterable[int]) -> dict[int, float]:
    """Mean rating per project over every feedback row, private ones included."""
    ids = list(project_ids)
    if not ids:
        return {}
    rows = s.execute(
        select(Feedback.project_id, func.avg(Feedback.rating))
        .where(Feedback.project_id.in_(ids))
        .group_by(Feedback.project_id)
    ).all()
    return {pid: float(avg) for pid, avg in rows if avg is not None}


def average_rating(s: Session, project_id: int) -> float | None:
    return average_ratings(s, [project_id]).get(project_id)


def attach_aggregate(s: Session, project: dict) -> dict:
    project["averageRating"] = average_rating(s, project["id"])
    return project


# ---------- Visibility ----------


def can_read(identity: Identity, fb: Feedback) -> bool:
    return can_perform(identity, Action.READ_FEEDBACK, FeedbackContext(author_id=fb.user_id, is_private=fb.is_private))


def visible_feedback(s: Session, identity: Identity, project_id: int) -> list[Feedback]:
    """Feedback rows of a project the actor may see, newest first."""
    rows = (
        s.execute(
            select(Feedback)
            .where(Feedback.project_id == project_id)
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        )
        .scalars()
        .all()
    )
    return [fb for fb in rows if can_read(identity, fb)]


def feedback_to_dict(fb: Feedback) -> dict:
    author = fb.author
    return {
        "id": fb.id,
        "projectId": fb.project_id,
        "userId": fb.user_id,
        "content": fb.content,
        "rating": fb.rating,
        "isPrivate": fb.is_private,
        "createdAt": isoformat(fb.created_at),
        "author": {
            "id": author.id,
            "username": author.username,
            "firstName": author.first_name,
            "lastName": author.last_name,
            "role": author.role,
        }
        if author is not None
        else None,
    }


def list_project_feedback(s: Session, identity: Identity, project_id: int) -> list[dict]:
    from app.showcase.modules.projects.models import Project

    require(identity, Action.READ_PROJECT)
    if not is_storable_int(project_id) or s.get(Project, project_id) is None:
        raise NotFoundError("Project not found", project_id=project_id)
    return [feedback_to_dict(fb) for fb in visible_feedback(s, identity, project_id)]


def _project_stub(project) -> dict:
    return {"id": project.id, "title": project.title, "thumbnailUrl": project.thumbnail_url}


def feedback_for_team_member(s: Session, identity: Identity) -> list[dict]:
    """
    Public faculty feedback on the projects of every team the actor belongs to.
    """
    from app.showcase.modules.projects.models import Project, TeamMember

    require(identity, Action.READ_TEAM_FEEDBACK, message="Access denied. Students only.")

    rows = (
        s.execute(
            select(Feedback)
            .join(Project, Project.id == Feedback.project_id)
            .join(TeamMember, TeamMember.team_id == Project.team_id)
            .join(User, User.id == Feedback.user_id)
            .where(TeamMember.user_id == identity.user_id)
            .where(Feedback.is_private.is_(False))
            .where(User.role == Role.FACULTY.value)
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        )
        .unique()
        .scalars()
        .all()
    )
    out = []
    for fb in rows:
        item = feedback_to_dict(fb)
        item["facultyName"] = fb.author.username if fb.author else None
        item["project"] = _project_stub(fb.project)
        out.append(item)
    return out


def feedback_by_author(s: Session, identity: Identity) -> list[dict]:
    """Everything the actor has written, newest first."""
    require(identity, Action.CREATE_FEEDBACK, message="Only faculty members can access their feedback")

    rows = (
        s.execute(
            select(Feedback)
            .where(Feedback.user_id == identity.user_id)
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        )
        .scalars()
        .all()
    )
    out = []
    for fb in rows:
        item = feedback_to_dict(fb)
        item["project"] = _project_stub(fb.project)
        out.append(item)
    return out

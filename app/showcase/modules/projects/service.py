"""
Projects service layer.

Every multi-row write runs inside one `write_unit`: either all of team, membership,
project, SDG tags and media land, or none of them do. Authorization and payload
validation happen before the first row is written.

Association sets (SDG tags, media) are replaced wholesale on update: all existing
rows are deleted and the supplied set is inserted. Two concurrent updates of the
same project race at that granularity and the last commit wins.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.showcase.audit import record_event
from app.showcase.constants import IMAGE_SUFFIXES, SDGS, TEAM_LEADER_ROLE, TEAM_MEMBER_ROLE
from app.showcase.db import write_unit
from app.showcase.errors import ConflictError, NotFoundError, ValidationError
from app.showcase.models import User
from app.showcase.rbac import Action, Identity, ProjectContext, require
from app.showcase.utils import clean_str, is_storable_int, optional_str, parse_int, parse_int_list, parse_str_list

from .models import SDG, Project, ProjectMedia, ProjectSDG, Team, TeamMember

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


# Accepted spellings of the association lists; the first is canonical.
SDG_KEYS = ("sdgIds", "sdgs")
MEDIA_KEYS = ("mediaUrls",)


def media_type_for_url(url: str) -> str:
    """Classify a media URL by its file suffix."""
    path = url.split("?", 1)[0].split("#", 1)[0]
    return "image" if path.lower().endswith(IMAGE_SUFFIXES) else "video"


def _first_present(payload: dict, keys: Sequence[str]) -> tuple[bool, object]:
    for key in keys:
        if key in payload and payload[key] is not None:
            return True, payload[key]
    return False, None


# ---------- Validation ----------


def validate_project_payload(payload: dict, *, require_team_name: bool = False, require_team_id: bool = False) -> list[str]:
    """Validate project creation payload. Returns list of errors."""
    errors = []
    for key, label in (("title", "Title"), ("description", "Description"), ("thumbnailUrl", "Thumbnail URL")):
        if not clean_str(payload.get(key)):
            errors.append(f"{label} is required.")
    if require_team_name and not clean_str(payload.get("teamName")):
        errors.append("Team name is required.")
    if require_team_id and payload.get("teamId") is None:
        errors.append("Team id is required.")
    errors.extend(_validate_association_shapes(payload))
    return errors


def validate_project_update_payload(payload: dict) -> list[str]:
    errors = []
    for key in ("title", "description", "thumbnailUrl", "repositoryUrl", "demoUrl"):
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{key} must be a string.")
    errors.extend(_validate_association_shapes(payload))
    return errors


def _validate_association_shapes(payload: dict) -> list[str]:
    errors = []
    present, raw = _first_present(payload, SDG_KEYS)
    if present:
        try:
            parse_int_list(raw, "sdgIds")
        except ValidationError as e:
            errors.append(e.message)
    present, raw = _first_present(payload, MEDIA_KEYS)
    if present:
        try:
            parse_str_list(raw, "mediaUrls")
        except ValidationError as e:
            errors.append(e.message)
    return errors


def _raise_if(errors: list[str], message: str) -> None:
    if errors:
        raise ValidationError(message, errors=errors)


def ensure_sdgs_exist(s: Session, sdg_ids: list[int]) -> None:
    """Unknown SDG ids are rejected, never skipped."""
    if not sdg_ids:
        return
    wanted = set(sdg_ids)
    found = set(s.execute(select(SDG.id).where(SDG.id.in_(wanted))).scalars())
    missing = sorted(wanted - found)
    if missing:
        raise ValidationError("Unknown SDG ids", errors=[f"SDG {i} does not exist." for i in missing])


# ---------- Context ----------


def get_project(s: Session, project_id: int) -> Project:
    project = s.get(Project, project_id) if is_storable_int(project_id) else None
    if project is None:
        raise NotFoundError("Project not found", project_id=project_id)
    return project


def get_team(s: Session, team_id: int) -> Team:
    team = s.get(Team, team_id) if is_storable_int(team_id) else None
    if team is None:
        raise NotFoundError("Team not found", team_id=team_id)
    return team


def project_context(s: Session, project: Project) -> ProjectContext:
    """Membership as stored right now; rebuilt for every request."""
    member_ids = s.execute(select(TeamMember.user_id).where(TeamMember.team_id == project.team_id)).scalars()
    return ProjectContext(team_id=project.team_id, member_ids=frozenset(member_ids), project_id=project.id)


# ---------- Row writers (each flushes so a failure surfaces at its own step) ----------


def _insert_team(s: Session, name: str, description: str | None) -> Team:
    now = datetime.utcnow()
    team = Team(name=name, description=description, created_at=now, updated_at=now)
    s.add(team)
    s.flush()
    return team


def _insert_member(s: Session, team: Team, user_id: int, role: str) -> TeamMember:
    existing = s.execute(
        select(TeamMember.id).where(TeamMember.team_id == team.id, TeamMember.user_id == user_id)
    ).first()
    if existing is not None:
        raise ConflictError("User is already a member of this team", team_id=team.id, user_id=user_id)
    member = TeamMember(user_id=user_id, role=role or TEAM_MEMBER_ROLE)
    team.members.append(member)
    s.flush()
    return member


def _insert_project(s: Session, team: Team, payload: dict) -> Project:
    now = datetime.utcnow()
    project = Project(
        title=clean_str(payload.get("title")),
        description=clean_str(payload.get("description")),
        thumbnail_url=clean_str(payload.get("thumbnailUrl")),
        repository_url=optional_str(payload.get("repositoryUrl")),
        demo_url=optional_str(payload.get("demoUrl")),
        created_at=now,
        updated_at=now,
    )
    team.projects.append(project)
    s.flush()
    return project


def _insert_sdg_link(s: Session, project: Project, sdg_id: int) -> ProjectSDG:
    link = ProjectSDG(sdg_id=sdg_id)
    project.sdg_links.append(link)
    s.flush()
    return link


def _insert_media(s: Session, project: Project, media_url: str) -> ProjectMedia:
    media = ProjectMedia(media_url=media_url, media_type=media_type_for_url(media_url))
    project.media.append(media)
    s.flush()
    return media


def replace_sdgs(s: Session, project: Project, sdg_ids: list[int]) -> None:
    """Delete every tag of the project, then insert the given set in order."""
    project.sdg_links.clear()
    s.flush()
    seen: set[int] = set()
    for sdg_id in sdg_ids:
        if sdg_id in seen:
            raise ConflictError("Duplicate SDG tag", project_id=project.id, sdg_id=sdg_id)
        seen.add(sdg_id)
        _insert_sdg_link(s, project, sdg_id)


def replace_media(s: Session, project: Project, media_urls: list[str]) -> None:
    project.media.clear()
    s.flush()
    for url in media_urls:
        _insert_media(s, project, url)


# ---------- Operations ----------


def submit_project(s: Session, identity: Identity, payload: dict) -> Project:
    """
    Student composite submission: a new team led by the submitter plus its first
    project, SDG tags and media, committed as one unit.
    """
    require(identity, Action.SUBMIT_PROJECT, message="Only students can submit projects")

    _raise_if(validate_project_payload(payload, require_team_name=True), "Missing required fields")
    _, raw_sdgs = _first_present(payload, SDG_KEYS)
    _, raw_media = _first_present(payload, MEDIA_KEYS)
    sdg_ids = parse_int_list(raw_sdgs, "sdgIds") if raw_sdgs is not None else []
    media_urls = parse_str_list(raw_media, "mediaUrls") if raw_media is not None else []
    ensure_sdgs_exist(s, sdg_ids)

    logger.info(
        "Project submission start: user=%s team=%r sdgs=%d media=%d",
        identity.user_id,
        clean_str(payload.get("teamName")),
        len(sdg_ids),
        len(media_urls),
    )
    with write_unit(s):
        team = _insert_team(s, clean_str(payload.get("teamName")), optional_str(payload.get("teamDescription")))
        _insert_member(s, team, identity.user_id, TEAM_LEADER_ROLE)
        project = _insert_project(s, team, payload)
        replace_sdgs(s, project, sdg_ids)
        replace_media(s, project, media_urls)
        record_event(
            s,
            actor=identity,
            action="project.submit",
            entity_type="Project",
            entity_id=str(project.id),
            metadata={"team_id": team.id, "title": project.title, "sdg_ids": sdg_ids, "media_count": len(media_urls)},
        )

    logger.info("Project submission committed: project=%s team=%s", project.id, team.id)
    return project


def create_project(s: Session, identity: Identity, payload: dict) -> Project:
    """General creation path: a project attached to an existing team."""
    require(identity, Action.CREATE_PROJECT, message="Unauthorized to create projects")

    _raise_if(validate_project_payload(payload, require_team_id=True), "Missing required fields")
    team = get_team(s, parse_int(payload.get("teamId"), "teamId"))
    _, raw_sdgs = _first_present(payload, SDG_KEYS)
    _, raw_media = _first_present(payload, MEDIA_KEYS)
    sdg_ids = parse_int_list(raw_sdgs, "sdgIds") if raw_sdgs is not None else []
    media_urls = parse_str_list(raw_media, "mediaUrls") if raw_media is not None else []
    ensure_sdgs_exist(s, sdg_ids)

    with write_unit(s):
        project = _insert_project(s, team, payload)
        replace_sdgs(s, project, sdg_ids)
        replace_media(s, project, media_urls)
        record_event(
            s,
            actor=identity,
            action="project.create",
            entity_type="Project",
            entity_id=str(project.id),
            metadata={"team_id": team.id, "title": project.title, "sdg_ids": sdg_ids},
        )

    logger.info("Project %s created on team %s by user %s", project.id, team.id, identity.user_id)
    return project


def update_project(s: Session, identity: Identity, project_id: int, payload: dict) -> Project:
    """
    Replace scalar fields (omitted or blank fields keep their stored value) and,
    when supplied, the full SDG and media sets.
    """
    project = get_project(s, project_id)
    require(identity, Action.UPDATE_PROJECT, project_context(s, project), message="Unauthorized to update this project")

    _raise_if(validate_project_update_payload(payload), "Invalid project update")
    sdgs_given, raw_sdgs = _first_present(payload, SDG_KEYS)
    media_given, raw_media = _first_present(payload, MEDIA_KEYS)
    sdg_ids = parse_int_list(raw_sdgs, "sdgIds") if sdgs_given else []
    media_urls = parse_str_list(raw_media, "mediaUrls") if media_given else []
    if sdgs_given:
        ensure_sdgs_exist(s, sdg_ids)

    changes: dict[str, dict] = {}
    with write_unit(s):
        for key, attr in (
            ("title", "title"),
            ("description", "description"),
            ("thumbnailUrl", "thumbnail_url"),
            ("repositoryUrl", "repository_url"),
            ("demoUrl", "demo_url"),
        ):
            new = clean_str(payload.get(key))
            old = getattr(project, attr)
            if new and new != old:
                changes[attr] = {"old": old, "new": new}
                setattr(project, attr, new)
        project.updated_at = datetime.utcnow()
        s.flush()

        if sdgs_given:
            replace_sdgs(s, project, sdg_ids)
            changes["sdg_ids"] = {"new": sdg_ids}
        if media_given:
            replace_media(s, project, media_urls)
            changes["media_urls"] = {"new": media_urls}

        record_event(
            s,
            actor=identity,
            action="project.update",
            entity_type="Project",
            entity_id=str(project.id),
            metadata={"changes": changes},
        )

    logger.info("Project %s updated by user %s (fields=%s)", project.id, identity.user_id, sorted(changes))
    return project


def delete_project(s: Session, identity: Identity, project_id: int) -> None:
    """Remove a project with its tags, media and feedback. The team stays."""
    project = get_project(s, project_id)
    require(identity, Action.DELETE_PROJECT, project_context(s, project), message="Unauthorized to delete this project")

    with write_unit(s):
        record_event(
            s,
            actor=identity,
            action="project.delete",
            entity_type="Project",
            entity_id=str(project.id),
            metadata={"team_id": project.team_id, "title": project.title},
        )
        s.delete(project)
        s.flush()

    logger.info("Project %s deleted by user %s", project_id, identity.user_id)


# ---------- Teams ----------


def _parse_members(raw: object) -> list[tuple[int, str]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("members must be a list.")
    out = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("members entries must be objects with userId and role.")
        out.append((parse_int(item.get("userId"), "userId"), clean_str(item.get("role")) or TEAM_MEMBER_ROLE))
    return out


def _require_user(s: Session, user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", user_id=user_id)
    return user


def create_team(s: Session, identity: Identity, payload: dict) -> Team:
    require(identity, Action.MANAGE_TEAM, message="Unauthorized to manage teams")

    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Missing required fields", errors=["Team name is required."])
    members = _parse_members(payload.get("members"))
    for user_id, _role in members:
        _require_user(s, user_id)

    with write_unit(s):
        team = _insert_team(s, name, optional_str(payload.get("description")))
        for user_id, role in members:
            _insert_member(s, team, user_id, role)
        record_event(
            s,
            actor=identity,
            action="team.create",
            entity_type="Team",
            entity_id=str(team.id),
            metadata={"name": team.name, "member_ids": [m[0] for m in members]},
        )
    return team


def add_team_member(s: Session, identity: Identity, team_id: int, payload: dict) -> TeamMember:
    team = get_team(s, team_id)
    require(identity, Action.MANAGE_TEAM, message="Unauthorized to manage teams")

    user_id = parse_int(payload.get("userId"), "userId")
    role = clean_str(payload.get("role")) or TEAM_MEMBER_ROLE
    _require_user(s, user_id)

    with write_unit(s):
        member = _insert_member(s, team, user_id, role)
        record_event(
            s,
            actor=identity,
            action="team.member_add",
            entity_type="TeamMember",
            entity_id=str(member.id),
            metadata={"team_id": team.id, "user_id": user_id, "role": role},
        )
    return member


def delete_team(s: Session, identity: Identity, team_id: int) -> None:
    """Cascades to members, projects and everything hanging off those projects."""
    team = get_team(s, team_id)
    require(identity, Action.MANAGE_TEAM, message="Unauthorized to manage teams")

    with write_unit(s):
        record_event(
            s,
            actor=identity,
            action="team.delete",
            entity_type="Team",
            entity_id=str(team.id),
            metadata={"name": team.name, "project_ids": [p.id for p in team.projects]},
        )
        s.delete(team)
        s.flush()


# ---------- Reference data ----------


def ensure_sdgs(s: Session) -> int:
    """Insert any missing SDG rows (idempotent). Returns the number inserted."""
    existing = set(s.execute(select(SDG.number)).scalars())
    inserted = 0
    for number, name, description, color in SDGS:
        if number in existing:
            continue
        s.add(SDG(id=number, number=number, name=name, description=description, color=color))
        inserted += 1
    if inserted:
        s.flush()
    return inserted

from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.showcase.db import db_session
from app.showcase.modules.projects.queries import (
    get_project_detail,
    get_team_detail,
    list_member_projects,
    list_projects,
    list_sdgs,
)
from app.showcase.modules.projects.service import (
    add_team_member,
    create_project,
    create_team,
    delete_project,
    delete_team,
    submit_project,
    update_project,
)
from app.showcase.rbac import Identity, current_identity, require_identity
from app.showcase.utils import clean_str, json_payload, parse_int

bp = Blueprint("projects", __name__)


def _identity() -> Identity:
    identity = current_identity()
    if identity is None:
        raise RuntimeError("No current identity")
    return identity


# ---------- SDGs ----------
@bp.get("/sdgs")
def sdgs_list():
    return jsonify(list_sdgs(db_session()))


# ---------- Projects ----------
@bp.get("/projects")
@require_identity
def projects_list():
    raw_sdg = clean_str(request.args.get("sdg"))
    sdg_number = parse_int(raw_sdg, "sdg") if raw_sdg else None
    search = clean_str(request.args.get("q")) or None
    return jsonify(list_projects(db_session(), _identity(), sdg_number=sdg_number, search=search))


@bp.get("/projects/<int:project_id>")
@require_identity
def project_detail(project_id: int):
    return jsonify(get_project_detail(db_session(), _identity(), project_id))


@bp.post("/projects")
@require_identity
def projects_create():
    s = db_session()
    project = create_project(s, _identity(), json_payload())
    return jsonify(get_project_detail(s, _identity(), project.id)), 201


@bp.put("/projects/<int:project_id>")
@bp.put("/student/projects/<int:project_id>")
@require_identity
def project_update(project_id: int):
    s = db_session()
    project = update_project(s, _identity(), project_id, json_payload())
    return jsonify(get_project_detail(s, _identity(), project.id))


@bp.delete("/projects/<int:project_id>")
@bp.delete("/student/projects/<int:project_id>")
@require_identity
def project_delete(project_id: int):
    delete_project(db_session(), _identity(), project_id)
    return "", 204


# ---------- Student submission ----------
@bp.get("/student/projects")
@require_identity
def student_projects_list():
    return jsonify(list_member_projects(db_session(), _identity()))


@bp.post("/student/projects")
@require_identity
def student_projects_submit():
    s = db_session()
    project = submit_project(s, _identity(), json_payload())
    return jsonify(get_project_detail(s, _identity(), project.id)), 201


# ---------- Teams ----------
@bp.post("/teams")
@require_identity
def teams_create():
    s = db_session()
    team = create_team(s, _identity(), json_payload())
    return jsonify(get_team_detail(s, _identity(), team.id)), 201


@bp.get("/teams/<int:team_id>")
@require_identity
def team_detail(team_id: int):
    return jsonify(get_team_detail(db_session(), _identity(), team_id))


@bp.post("/teams/<int:team_id>/members")
@require_identity
def team_members_add(team_id: int):
    s = db_session()
    add_team_member(s, _identity(), team_id, json_payload())
    return jsonify(get_team_detail(s, _identity(), team_id)), 201


@bp.delete("/teams/<int:team_id>")
@require_identity
def team_delete(team_id: int):
    delete_team(db_session(), _identity(), team_id)
    return "", 204

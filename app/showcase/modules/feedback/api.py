from __future__ import annotations

from flask import Blueprint, jsonify

from app.showcase.db import db_session
from app.showcase.modules.feedback.service import (
    create_feedback,
    feedback_by_author,
    feedback_for_team_member,
    feedback_to_dict,
    list_project_feedback,
)
from app.showcase.rbac import current_identity, require_identity
from app.showcase.utils import json_payload, parse_int

bp = Blueprint("feedback", __name__)


@bp.get("/projects/<int:project_id>/feedback")
@require_identity
def project_feedback_list(project_id: int):
    return jsonify(list_project_feedback(db_session(), current_identity(), project_id))


@bp.post("/projects/<int:project_id>/feedback")
@require_identity
def project_feedback_create(project_id: int):
    fb = create_feedback(db_session(), current_identity(), project_id, json_payload())
    return jsonify(feedback_to_dict(fb)), 201


@bp.post("/feedback")
@require_identity
def feedback_create():
    payload = json_payload()
    project_id = parse_int(payload.get("projectId"), "projectId")
    fb = create_feedback(db_session(), current_identity(), project_id, payload)
    return jsonify(feedback_to_dict(fb)), 201


@bp.get("/student/feedback")
@require_identity
def student_feedback_list():
    return jsonify(feedback_for_team_member(db_session(), current_identity()))


@bp.get("/faculty/feedback")
@require_identity
def faculty_feedback_list():
    return jsonify(feedback_by_author(db_session(), current_identity()))

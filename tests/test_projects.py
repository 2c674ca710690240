"""
Tests for the projects service layer.

Tests cover:
- Student composite submission (team + leader + project + SDG tags + media)
- All-or-nothing writes when any step of a submission fails
- SDG validation and duplicate tags
- Update semantics for scalar fields and association sets
- Membership-based authorization of update/delete
- Deletion cascades and team management
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from werkzeug.security import generate_password_hash

from app.showcase.db import build_engine, build_sessionmaker
from app.showcase.errors import ConflictError, NotFoundError, PermissionDenied, StoreError, ValidationError
from app.showcase.models import AuditEvent, Base, User
from app.showcase.modules.feedback.models import Feedback
from app.showcase.modules.feedback.service import create_feedback
from app.showcase.modules.projects import service as svc
from app.showcase.modules.projects.models import Project, ProjectMedia, ProjectSDG, Team, TeamMember
from app.showcase.modules.projects.queries import get_project_detail, list_member_projects, list_projects
from app.showcase.rbac import Identity, Role


STUDENT = Identity(7, Role.STUDENT)
OTHER_STUDENT = Identity(8, Role.STUDENT)
FACULTY = Identity(20, Role.FACULTY)
VIEWER = Identity(30, Role.VIEWER)
ADMIN = Identity(1, Role.ADMIN)


def _seed_users(s):
    for identity in (STUDENT, OTHER_STUDENT, FACULTY, VIEWER, ADMIN):
        name = f"{identity.role.value}{identity.user_id}"
        s.add(
            User(
                id=identity.user_id,
                username=name,
                email=f"{name}@example.com",
                password_hash=generate_password_hash("pw"),
                role=identity.role.value,
            )
        )


@pytest.fixture()
def sm(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path/'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = build_sessionmaker(engine)
    with factory() as s:
        svc.ensure_sdgs(s)
        _seed_users(s)
        s.commit()
    yield factory
    engine.dispose()


def _count(sm, model) -> int:
    with sm() as s:
        return s.execute(select(func.count()).select_from(model)).scalar_one()


def _payload(**overrides) -> dict:
    payload = {
        "title": "Solar Pods",
        "description": "Off-grid charging pods for rural schools",
        "thumbnailUrl": "https://cdn.example.com/solar/thumb.png",
        "teamName": "EduTech",
        "teamDescription": "Third-year engineering",
        "sdgIds": [4, 7, 10],
        "mediaUrls": ["https://cdn.example.com/solar/a.jpg", "https://cdn.example.com/solar/b.mp4"],
    }
    payload.update(overrides)
    return payload


def _submit(sm, **overrides) -> int:
    with sm() as s:
        return svc.submit_project(s, STUDENT, _payload(**overrides)).id


class TestMediaType:
    def test_image_suffixes(self):
        assert svc.media_type_for_url("https://x/a.jpg") == "image"
        assert svc.media_type_for_url("https://x/A.JPEG") == "image"
        assert svc.media_type_for_url("https://x/a.png?size=large") == "image"
        assert svc.media_type_for_url("https://x/a.gif#frame") == "image"

    def test_everything_else_is_video(self):
        assert svc.media_type_for_url("https://x/b.mp4") == "video"
        assert svc.media_type_for_url("https://youtube.com/watch?v=abc.png") == "video"
        assert svc.media_type_for_url("https://x/no-suffix") == "video"


class TestSubmitProject:
    def test_submission_writes_every_row(self, sm):
        project_id = _submit(sm)

        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)

        assert detail["title"] == "Solar Pods"
        assert [sdg["number"] for sdg in detail["sdgs"]] == [4, 7, 10]
        assert detail["media"] == [
            {"url": "https://cdn.example.com/solar/a.jpg", "type": "image"},
            {"url": "https://cdn.example.com/solar/b.mp4", "type": "video"},
        ]
        assert detail["teamName"] == "EduTech"
        assert detail["team"]["members"][0]["id"] == STUDENT.user_id
        assert detail["team"]["members"][0]["role"] == "leader"
        assert detail["averageRating"] is None
        assert detail["feedback"] == []

        assert _count(sm, Team) == 1
        assert _count(sm, TeamMember) == 1
        assert _count(sm, ProjectSDG) == 3
        assert _count(sm, ProjectMedia) == 2
        with sm() as s:
            actions = s.execute(select(AuditEvent.action)).scalars().all()
        assert actions == ["project.submit"]

    def test_sdgs_alias_accepted(self, sm):
        project_id = _submit(sm, sdgIds=None, sdgs=[13])
        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)
        assert [sdg["number"] for sdg in detail["sdgs"]] == [13]

    def test_no_associations(self, sm):
        project_id = _submit(sm, sdgIds=None, mediaUrls=None)
        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)
        assert detail["sdgs"] == []
        assert detail["mediaUrls"] == []

    @pytest.mark.parametrize("missing", ["title", "description", "thumbnailUrl", "teamName"])
    def test_missing_required_field(self, sm, missing):
        with pytest.raises(ValidationError) as exc:
            _submit(sm, **{missing: "  "})
        assert exc.value.errors
        assert _count(sm, Team) == 0

    @pytest.mark.parametrize("identity", [FACULTY, VIEWER])
    def test_only_students_and_admin_submit(self, sm, identity):
        with sm() as s, pytest.raises(PermissionDenied):
            svc.submit_project(s, identity, _payload())
        assert _count(sm, Project) == 0

    def test_admin_may_submit(self, sm):
        with sm() as s:
            project = svc.submit_project(s, ADMIN, _payload())
        assert project.id is not None

    def test_unknown_sdg_rejected_before_any_write(self, sm):
        with pytest.raises(ValidationError) as exc:
            _submit(sm, sdgIds=[4, 99])
        assert "SDG 99 does not exist." in exc.value.errors
        for model in (Team, TeamMember, Project, ProjectSDG, ProjectMedia, AuditEvent):
            assert _count(sm, model) == 0

    def test_duplicate_sdg_rolls_back_everything(self, sm):
        with pytest.raises(ConflictError):
            _submit(sm, sdgIds=[6, 6])
        for model in (Team, TeamMember, Project, ProjectSDG, ProjectMedia, AuditEvent):
            assert _count(sm, model) == 0

    def test_malformed_sdg_list(self, sm):
        with pytest.raises(ValidationError):
            _submit(sm, sdgIds="4,7")


class TestSubmissionAtomicity:
    @pytest.mark.parametrize(
        "step",
        ["_insert_team", "_insert_member", "_insert_project", "_insert_sdg_link", "_insert_media"],
    )
    def test_failure_at_any_step_leaves_no_rows(self, sm, monkeypatch, step):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(svc, step, boom)

        with pytest.raises(StoreError):
            _submit(sm)

        for model in (Team, TeamMember, Project, ProjectSDG, ProjectMedia, AuditEvent):
            assert _count(sm, model) == 0

    def test_store_error_hides_driver_message(self, sm, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(svc, "_insert_media", boom)
        with pytest.raises(StoreError) as exc:
            _submit(sm)
        assert exc.value.to_dict() == {"error": "Internal store failure"}


class TestUpdateProject:
    def test_omitted_fields_keep_values(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            svc.update_project(s, STUDENT, project_id, {"title": "Solar Pods v2", "description": ""})
        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)
        assert detail["title"] == "Solar Pods v2"
        assert detail["description"] == "Off-grid charging pods for rural schools"
        assert [sdg["number"] for sdg in detail["sdgs"]] == [4, 7, 10]
        assert len(detail["mediaUrls"]) == 2

    def test_empty_sdg_list_clears_tags(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            svc.update_project(s, STUDENT, project_id, {"sdgIds": []})
        assert _count(sm, ProjectSDG) == 0
        assert _count(sm, ProjectMedia) == 2

    def test_sdg_set_replaced(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            svc.update_project(s, STUDENT, project_id, {"sdgIds": [13, 4], "mediaUrls": ["https://x/c.png"]})
        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)
        assert [sdg["number"] for sdg in detail["sdgs"]] == [4, 13]
        assert detail["media"] == [{"url": "https://x/c.png", "type": "image"}]

    def test_duplicate_sdg_keeps_previous_state(self, sm):
        project_id = _submit(sm)
        with sm() as s, pytest.raises(ConflictError):
            svc.update_project(s, STUDENT, project_id, {"title": "Changed", "sdgIds": [6, 6]})
        with sm() as s:
            detail = get_project_detail(s, STUDENT, project_id)
        assert detail["title"] == "Solar Pods"
        assert [sdg["number"] for sdg in detail["sdgs"]] == [4, 7, 10]

    def test_non_member_denied_and_nothing_changes(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            before = get_project_detail(s, STUDENT, project_id)
        for identity in (VIEWER, OTHER_STUDENT):
            with sm() as s, pytest.raises(PermissionDenied):
                svc.update_project(s, identity, project_id, {"title": "Hijacked", "sdgIds": []})
        with sm() as s:
            after = get_project_detail(s, STUDENT, project_id)
        assert after == before
        assert _count(sm, ProjectSDG) == 3

    def test_faculty_may_update_any_project(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            project = svc.update_project(s, FACULTY, project_id, {"demoUrl": "https://demo.example.com"})
        assert project.demo_url == "https://demo.example.com"

    def test_plain_member_label_may_update(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            team_id = s.get(Project, project_id).team_id
            svc.add_team_member(s, FACULTY, team_id, {"userId": OTHER_STUDENT.user_id})
        with sm() as s:
            project = svc.update_project(s, OTHER_STUDENT, project_id, {"title": "Team edit"})
        assert project.title == "Team edit"

    def test_unknown_project(self, sm):
        with sm() as s, pytest.raises(NotFoundError):
            svc.update_project(s, STUDENT, 999, {"title": "x"})

    def test_unknown_sdg_on_update(self, sm):
        project_id = _submit(sm)
        with sm() as s, pytest.raises(ValidationError):
            svc.update_project(s, STUDENT, project_id, {"sdgIds": [0]})
        assert _count(sm, ProjectSDG) == 3


class TestDeleteProject:
    def test_delete_keeps_team_and_cascades_feedback(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            create_feedback(s, FACULTY, project_id, {"content": "Nice", "rating": 4})
        assert _count(sm, Feedback) == 1

        with sm() as s:
            svc.delete_project(s, STUDENT, project_id)

        assert _count(sm, Project) == 0
        assert _count(sm, ProjectSDG) == 0
        assert _count(sm, ProjectMedia) == 0
        assert _count(sm, Feedback) == 0
        assert _count(sm, Team) == 1
        assert _count(sm, TeamMember) == 1

    def test_delete_denied_for_non_member(self, sm):
        project_id = _submit(sm)
        with sm() as s, pytest.raises(PermissionDenied):
            svc.delete_project(s, OTHER_STUDENT, project_id)
        assert _count(sm, Project) == 1

    def test_delete_unknown(self, sm):
        with sm() as s, pytest.raises(NotFoundError):
            svc.delete_project(s, ADMIN, 42)


class TestGeneralCreation:
    def _team(self, sm) -> int:
        with sm() as s:
            team = svc.create_team(
                s, FACULTY, {"name": "Lab 3", "members": [{"userId": OTHER_STUDENT.user_id, "role": "member"}]}
            )
            return team.id

    def test_faculty_creates_on_existing_team(self, sm):
        team_id = self._team(sm)
        with sm() as s:
            project = svc.create_project(s, FACULTY, _payload(teamId=team_id, sdgIds=[1]))
        with sm() as s:
            rows = list_member_projects(s, OTHER_STUDENT)
        assert [row["id"] for row in rows] == [project.id]
        assert rows[0]["teamName"] == "Lab 3"

    def test_student_cannot_use_general_path(self, sm):
        team_id = self._team(sm)
        with sm() as s, pytest.raises(PermissionDenied):
            svc.create_project(s, STUDENT, _payload(teamId=team_id))

    def test_team_not_found(self, sm):
        with sm() as s, pytest.raises(NotFoundError):
            svc.create_project(s, FACULTY, _payload(teamId=404))
        assert _count(sm, Project) == 0

    def test_team_id_required(self, sm):
        with sm() as s, pytest.raises(ValidationError):
            svc.create_project(s, FACULTY, _payload())


class TestTeams:
    def test_duplicate_member_conflict(self, sm):
        with sm() as s:
            team = svc.create_team(s, FACULTY, {"name": "Lab 3"})
            svc.add_team_member(s, FACULTY, team.id, {"userId": STUDENT.user_id})
        with sm() as s, pytest.raises(ConflictError):
            svc.add_team_member(s, FACULTY, team.id, {"userId": STUDENT.user_id, "role": "leader"})
        assert _count(sm, TeamMember) == 1

    def test_unknown_user(self, sm):
        with sm() as s:
            team = svc.create_team(s, FACULTY, {"name": "Lab 3"})
        with sm() as s, pytest.raises(NotFoundError):
            svc.add_team_member(s, FACULTY, team.id, {"userId": 555})

    def test_students_cannot_manage_teams(self, sm):
        with sm() as s, pytest.raises(PermissionDenied):
            svc.create_team(s, STUDENT, {"name": "Mine"})

    def test_delete_team_cascades(self, sm):
        project_id = _submit(sm)
        with sm() as s:
            team_id = s.get(Project, project_id).team_id
        with sm() as s:
            svc.delete_team(s, ADMIN, team_id)
        for model in (Team, TeamMember, Project, ProjectSDG, ProjectMedia):
            assert _count(sm, model) == 0


class TestListing:
    def test_filters(self, sm):
        solar = _submit(sm)
        water = _submit(sm, title="Rain Catcher", description="Harvest rainwater", teamName="Team Rain", sdgIds=[6])

        with sm() as s:
            everything = list_projects(s, VIEWER)
            by_sdg = list_projects(s, VIEWER, sdg_number=6)
            by_text = list_projects(s, VIEWER, search="solar")

        assert {row["id"] for row in everything} == {solar, water}
        assert [row["id"] for row in by_sdg] == [water]
        assert [row["id"] for row in by_text] == [solar]

    def test_ensure_sdgs_idempotent(self, sm):
        with sm() as s:
            assert svc.ensure_sdgs(s) == 0

"""Tests for the feedback module: creation, rating aggregate and visibility."""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from werkzeug.security import generate_password_hash

from app.showcase.db import build_engine, build_sessionmaker
from app.showcase.errors import NotFoundError, PermissionDenied, ValidationError
from app.showcase.models import AuditEvent, Base, User
from app.showcase.modules.feedback.models import Feedback
from app.showcase.modules.feedback.service import (
    average_rating,
    create_feedback,
    feedback_by_author,
    feedback_for_team_member,
    list_project_feedback,
)
from app.showcase.modules.projects.queries import get_project_detail, list_projects
from app.showcase.modules.projects.service import ensure_sdgs, submit_project
from app.showcase.rbac import Identity, Role


STUDENT = Identity(7, Role.STUDENT)
OTHER_STUDENT = Identity(8, Role.STUDENT)
FACULTY = Identity(20, Role.FACULTY)
OTHER_FACULTY = Identity(21, Role.FACULTY)
VIEWER = Identity(30, Role.VIEWER)
ADMIN = Identity(1, Role.ADMIN)


@pytest.fixture()
def sm(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path/'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = build_sessionmaker(engine)
    with factory() as s:
        ensure_sdgs(s)
        for identity in (STUDENT, OTHER_STUDENT, FACULTY, OTHER_FACULTY, VIEWER, ADMIN):
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
        s.commit()
    yield factory
    engine.dispose()


@pytest.fixture()
def project_id(sm):
    with sm() as s:
        project = submit_project(
            s,
            STUDENT,
            {
                "title": "Solar Pods",
                "description": "Off-grid charging pods",
                "thumbnailUrl": "https://cdn.example.com/thumb.png",
                "teamName": "Team Sun",
                "sdgIds": [7],
            },
        )
        return project.id


def _give(sm, identity, project_id, rating, *, private=False, content="Solid work"):
    with sm() as s:
        return create_feedback(
            s, identity, project_id, {"content": content, "rating": rating, "isPrivate": private}
        ).id


class TestCreateFeedback:
    def test_faculty_creates(self, sm, project_id):
        fb_id = _give(sm, FACULTY, project_id, 5)
        with sm() as s:
            fb = s.get(Feedback, fb_id)
            assert fb.rating == 5
            assert fb.is_private is False
            assert fb.user_id == FACULTY.user_id
            actions = s.execute(select(AuditEvent.action).order_by(AuditEvent.id)).scalars().all()
        assert actions[-1] == "feedback.create"

    @pytest.mark.parametrize("identity", [STUDENT, VIEWER])
    def test_non_faculty_denied(self, sm, project_id, identity):
        with pytest.raises(PermissionDenied) as exc:
            _give(sm, identity, project_id, 4)
        assert exc.value.message == "Only faculty members can submit feedback"

    def test_admin_allowed(self, sm, project_id):
        assert _give(sm, ADMIN, project_id, 3)

    @pytest.mark.parametrize("rating", [0, 6, -1, True, "5", 4.5, None])
    def test_rating_out_of_range(self, sm, project_id, rating):
        with pytest.raises(ValidationError):
            _give(sm, FACULTY, project_id, rating)
        with sm() as s:
            assert s.execute(select(func.count()).select_from(Feedback)).scalar_one() == 0

    def test_content_required(self, sm, project_id):
        with pytest.raises(ValidationError) as exc:
            _give(sm, FACULTY, project_id, 4, content="   ")
        assert "Content is required." in exc.value.errors

    def test_is_private_must_be_boolean(self, sm, project_id):
        with sm() as s, pytest.raises(ValidationError):
            create_feedback(s, FACULTY, project_id, {"content": "x", "rating": 4, "isPrivate": "yes"})

    def test_unknown_project(self, sm):
        with pytest.raises(NotFoundError):
            _give(sm, FACULTY, 404, 4)


class TestAverageRating:
    def test_none_without_feedback(self, sm, project_id):
        with sm() as s:
            assert average_rating(s, project_id) is None
            assert get_project_detail(s, VIEWER, project_id)["averageRating"] is None

    def test_mean_includes_private_rows(self, sm, project_id):
        _give(sm, FACULTY, project_id, 5)
        _give(sm, OTHER_FACULTY, project_id, 2, private=True)
        with sm() as s:
            assert average_rating(s, project_id) == pytest.approx(3.5)
            # Viewers see one row but the aggregate is over both
            detail = get_project_detail(s, VIEWER, project_id)
        assert detail["averageRating"] == pytest.approx(3.5)
        assert [fb["rating"] for fb in detail["feedback"]] == [5]

    def test_listing_carries_average(self, sm, project_id):
        _give(sm, FACULTY, project_id, 4)
        with sm() as s:
            rows = list_projects(s, VIEWER)
        assert rows[0]["averageRating"] == pytest.approx(4.0)

    def test_concurrent_ratings_both_counted(self, sm, project_id):
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(_give, sm, FACULTY, project_id, 4),
                pool.submit(_give, sm, OTHER_FACULTY, project_id, 2),
            ]
            for f in futures:
                f.result()
        with sm() as s:
            assert average_rating(s, project_id) == pytest.approx(3.0)


class TestVisibility:
    @pytest.fixture()
    def mixed(self, sm, project_id):
        public_id = _give(sm, FACULTY, project_id, 5, content="Public note")
        private_id = _give(sm, FACULTY, project_id, 3, private=True, content="Private note")
        return public_id, private_id

    @pytest.mark.parametrize("identity", [VIEWER, STUDENT, OTHER_STUDENT])
    def test_private_hidden_from_non_faculty(self, sm, project_id, mixed, identity):
        public_id, _ = mixed
        with sm() as s:
            rows = list_project_feedback(s, identity, project_id)
        assert [fb["id"] for fb in rows] == [public_id]

    @pytest.mark.parametrize("identity", [FACULTY, OTHER_FACULTY, ADMIN])
    def test_faculty_and_admin_see_everything(self, sm, project_id, mixed, identity):
        public_id, private_id = mixed
        with sm() as s:
            rows = list_project_feedback(s, identity, project_id)
        # newest first
        assert [fb["id"] for fb in rows] == [private_id, public_id]

    def test_author_shape(self, sm, project_id, mixed):
        with sm() as s:
            rows = list_project_feedback(s, VIEWER, project_id)
        assert rows[0]["author"]["username"] == "faculty20"
        assert rows[0]["author"]["role"] == "faculty"
        assert rows[0]["isPrivate"] is False

    def test_unknown_project(self, sm):
        with sm() as s, pytest.raises(NotFoundError):
            list_project_feedback(s, VIEWER, 404)


class TestInboxes:
    def test_student_sees_public_faculty_feedback_on_own_teams(self, sm, project_id):
        public_id = _give(sm, FACULTY, project_id, 5, content="Great")
        _give(sm, FACULTY, project_id, 2, private=True)
        _give(sm, ADMIN, project_id, 4)

        with sm() as s:
            rows = feedback_for_team_member(s, STUDENT)
        assert [fb["id"] for fb in rows] == [public_id]
        assert rows[0]["facultyName"] == "faculty20"
        assert rows[0]["project"]["title"] == "Solar Pods"

    def test_non_member_student_gets_nothing(self, sm, project_id):
        _give(sm, FACULTY, project_id, 5)
        with sm() as s:
            assert feedback_for_team_member(s, OTHER_STUDENT) == []

    def test_inbox_students_only(self, sm):
        with sm() as s, pytest.raises(PermissionDenied):
            feedback_for_team_member(s, VIEWER)

    def test_faculty_outbox(self, sm, project_id):
        first = _give(sm, FACULTY, project_id, 5)
        second = _give(sm, FACULTY, project_id, 1, private=True)
        _give(sm, OTHER_FACULTY, project_id, 3)

        with sm() as s:
            rows = feedback_by_author(s, FACULTY)
        assert [fb["id"] for fb in rows] == [second, first]
        assert rows[0]["project"]["id"] == project_id

    def test_outbox_denied_for_students(self, sm):
        with sm() as s, pytest.raises(PermissionDenied):
            feedback_by_author(s, STUDENT)

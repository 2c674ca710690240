"""
Authorization resolver.

One decision table for every role check in the application. `can_perform` is a
pure function of the identity, the action and the resource context handed to it;
callers build the context fresh from the store on every request, nothing here is
cached.
"""
from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.showcase.errors import PermissionDenied, ValidationError


class Role(str, enum.Enum):
    VIEWER = "viewer"
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown role: {value!r}") from None


class Action(str, enum.Enum):
    READ_PROJECT = "readProject"
    # Student composite submission: always creates its own team.
    SUBMIT_PROJECT = "submitProject"
    # General creation path against an existing team.
    CREATE_PROJECT = "createProject"
    UPDATE_PROJECT = "updateProject"
    DELETE_PROJECT = "deleteProject"
    CREATE_FEEDBACK = "createFeedback"
    READ_FEEDBACK = "readFeedback"
    # Feedback received on the projects of the actor's own teams.
    READ_TEAM_FEEDBACK = "readTeamFeedback"
    MANAGE_TEAM = "manageTeam"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: Role

    @classmethod
    def of(cls, user_id: object, role: object) -> "Identity":
        try:
            uid = int(user_id)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid user id: {user_id!r}") from None
        return cls(user_id=uid, role=Role.parse(role))


@dataclass(frozen=True)
class ProjectContext:
    """Team membership needed to judge a project mutation."""

    team_id: int
    member_ids: frozenset[int]
    project_id: int | None = None


@dataclass(frozen=True)
class FeedbackContext:
    author_id: int
    is_private: bool


Resource = ProjectContext | FeedbackContext | None


_FACULTY_ACTIONS = frozenset(
    {
        Action.CREATE_PROJECT,
        Action.UPDATE_PROJECT,
        Action.DELETE_PROJECT,
        Action.CREATE_FEEDBACK,
        Action.READ_FEEDBACK,
        Action.MANAGE_TEAM,
    }
)
_MEMBER_ACTIONS = frozenset({Action.UPDATE_PROJECT, Action.DELETE_PROJECT})
_STUDENT_ACTIONS = frozenset({Action.SUBMIT_PROJECT, Action.READ_TEAM_FEEDBACK})
_AUTHENTICATED_ACTIONS = frozenset({Action.READ_PROJECT})


def can_perform(identity: Identity | None, action: Action, resource: Resource = None) -> bool:
    """First matching rule wins; anything unmatched is denied."""
    if identity is None:
        return False
    role = identity.role

    if role is Role.ADMIN:
        return True

    if role is Role.FACULTY and action in _FACULTY_ACTIONS:
        return True

    if action in _MEMBER_ACTIONS:
        # "leader" and "member" labels are equivalent here
        return isinstance(resource, ProjectContext) and identity.user_id in resource.member_ids

    if role is Role.STUDENT and action in _STUDENT_ACTIONS:
        return True

    if action is Action.READ_FEEDBACK:
        if not isinstance(resource, FeedbackContext):
            return False
        return not resource.is_private or resource.author_id == identity.user_id

    if action in _AUTHENTICATED_ACTIONS:
        return True

    return False


def require(identity: Identity | None, action: Action, resource: Resource = None, *, message: str | None = None) -> None:
    if not can_perform(identity, action, resource):
        raise PermissionDenied(message or f"Not allowed to {action.value}")


def current_identity() -> Identity | None:
    return getattr(g, "identity", None)


def require_identity(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Route guard: unauthenticated calls get 401 before the handler runs."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_identity() is None:
            return jsonify({"error": "Authentication required"}), 401
        return fn(*args, **kwargs)

    return wrapped

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from app.showcase.audit import record_event
from app.showcase.constants import REGISTRABLE_ROLES
from app.showcase.db import db_session, write_unit
from app.showcase.errors import ConflictError, ValidationError
from app.showcase.models import User
from app.showcase.rbac import Identity, Role, current_identity, require_identity
from app.showcase.security import ensure_csrf_token
from app.showcase.utils import clean_str, json_payload, optional_str

bp = Blueprint("auth", __name__)


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW"])
    attempts = _login_attempts()
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Identity verifier: resolves g.identity from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.identity = None
    if request.path.startswith(("/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        return
    if user is None:
        session.pop("user_id", None)
        return
    g.current_user = user
    g.identity = Identity.of(user.id, user.role)


def _user_response(user: User) -> dict:
    return {"user": user.to_public_dict(), "csrfToken": ensure_csrf_token()}


@bp.post("/register")
def register():
    payload = json_payload()
    username = clean_str(payload.get("username"))
    email = clean_str(payload.get("email")).lower()
    password = payload.get("password") or ""
    role = clean_str(payload.get("role")).lower()

    errors = []
    if not username:
        errors.append("Username is required.")
    if not email or "@" not in email:
        errors.append("A valid email is required.")
    if not isinstance(password, str) or len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if role not in REGISTRABLE_ROLES:
        errors.append("Invalid role.")
    if errors:
        raise ValidationError("Invalid registration", errors=errors)

    s = db_session()
    existing = s.execute(select(User.id).where(or_(User.email == email, User.username == username))).first()
    if existing is not None:
        raise ConflictError("User already exists")

    now = datetime.utcnow()
    with write_unit(s):
        user = User(
            username=username,
            email=email,
            password_hash=generate_password_hash(password),
            role=role,
            first_name=optional_str(payload.get("firstName")),
            last_name=optional_str(payload.get("lastName")),
            created_at=now,
            updated_at=now,
        )
        s.add(user)
        s.flush()
        record_event(
            s,
            actor=Identity(user_id=user.id, role=Role.parse(user.role)),
            action="auth.register",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"username": username, "role": role},
        )

    session["user_id"] = user.id
    current_app.logger.info("Registered user %s (role=%s)", user.id, user.role)
    return jsonify(_user_response(user)), 201


@bp.post("/login")
def login():
    payload = json_payload()
    email = clean_str(payload.get("email")).lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait before retrying."}), 429

    _record_attempt(ip)

    s = db_session()
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or not isinstance(password, str) or not check_password_hash(user.password_hash, password):
        with write_unit(s):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                metadata={"email": email},
            )
        return jsonify({"error": "Invalid credentials"}), 400

    session["user_id"] = user.id
    _login_attempts()[ip].clear()
    with write_unit(s):
        record_event(
            s,
            actor=Identity(user_id=user.id, role=Role.parse(user.role)),
            action="auth.login",
            entity_type="User",
            entity_id=str(user.id),
        )
    return jsonify(_user_response(user))


@bp.post("/logout")
def logout():
    identity = current_identity()
    if identity is not None:
        s = db_session()
        with write_unit(s):
            record_event(s, actor=identity, action="auth.logout", entity_type="User", entity_id=str(identity.user_id))
    session.pop("user_id", None)
    return "", 204


@bp.get("/me")
@require_identity
def me():
    return jsonify(_user_response(g.current_user))

import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.showcase.config import load_config
from app.showcase.db import init_db, teardown_db_session
from app.showcase.errors import ShowcaseError, StoreError
from app.showcase.routes import bp as routes_bp
from app.showcase.auth import bp as auth_bp, load_current_user
from app.showcase.modules.projects.api import bp as projects_bp
from app.showcase.modules.feedback.api import bp as feedback_bp

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    # CSRF protection (minimal)
    from app.showcase.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Auth endpoints hand out the token, so they pass through
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid."}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(projects_bp, url_prefix="/api")
    app.register_blueprint(feedback_bp, url_prefix="/api")

    # Identity is resolved before the CSRF guard sees the request
    app.before_request_funcs.setdefault(None, []).insert(0, load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ShowcaseError)
    def _err_showcase(e: ShowcaseError):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if isinstance(e, StoreError):
            app.logger.error("Store failure (request_id=%s): %s", rid, e.message, exc_info=e.__cause__ or e)
        else:
            app.logger.info("%s (request_id=%s): %s", type(e).__name__, rid, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Server error"}), 500

    logger.info("create_app() complete; app ready to serve")

    return app

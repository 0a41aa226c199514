import logging
import os
from datetime import timedelta

import click
from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request, session

from app.taskboard.admin import bp as admin_bp
from app.taskboard.api import bp as api_bp
from app.taskboard.auth import bp as auth_bp, load_current_user
from app.taskboard.config import load_config
from app.taskboard.db import init_db, session_scope, teardown_db_session
from app.taskboard.modules.dashboards.admin import bp as dashboards_bp
from app.taskboard.modules.projects.admin import bp as projects_bp
from app.taskboard.modules.registration.admin import bp as registration_bp
from app.taskboard.modules.tasks.admin import bp as tasks_bp
from app.taskboard.modules.todos.admin import bp as todos_bp
from app.taskboard.modules.users.admin import bp as users_bp
from app.taskboard.routes import bp as routes_bp

# Unsafe requests to these endpoints skip the CSRF check (no session token exists yet).
CSRF_EXEMPT_ENDPOINTS = frozenset({"api.auth_login", "api.auth_logout", "api.auth_register"})


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=int(app.config["SESSION_DAYS"]))
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.taskboard.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.taskboard.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm, "current_user": getattr(g, "current_user", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("time_status")
    def _time_status_filter(value):
        from app.taskboard.utils import time_status

        return time_status(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            endpoint = request.endpoint or ""
            if endpoint.startswith("auth.") or endpoint in CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF check failed: %s %s", request.method, request.path)
                if request.path.startswith("/api/"):
                    return jsonify({"error": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

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
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(registration_bp, url_prefix="/admin")
    app.register_blueprint(users_bp)
    app.register_blueprint(dashboards_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(todos_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify({"error": "Bad request"}), 400
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        app.logger.warning("Forbidden: path=%s missing_permission=%s request_id=%s", request.path, missing, getattr(g, "request_id", None))
        if request.path.startswith("/api/"):
            return jsonify({"error": "Forbidden"}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify({"error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if request.path.startswith("/api/"):
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500

    @app.cli.command("promote-admin")
    @click.argument("email")
    def promote_admin_command(email: str) -> None:
        """Grant the admin role to an existing user."""
        from app.taskboard.modules.users.service import promote_to_admin

        try:
            with session_scope(app) as s:
                user = promote_to_admin(s, email)
                click.echo(f"{user.email} is now an admin.")
        except (LookupError, ValueError) as e:
            raise click.ClickException(str(e)) from e

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app

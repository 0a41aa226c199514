"""
JSON endpoints: auth, registration queue, profile, reports and board operations.
Errors are returned as {"error": "..."} with a matching status code.
"""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, session

from app.taskboard.audit import record_event
from app.taskboard.auth import (
    authenticate,
    check_rate_limit,
    clear_attempts,
    log_failed_login,
    login_user,
    record_attempt,
)
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.dashboards.service import report_stats
from app.taskboard.modules.projects.service import board_payload, get_project_for
from app.taskboard.modules.registration.service import get_entry, queue_status, submit_registration
from app.taskboard.modules.tasks.service import get_task_for, move_task, set_task_status
from app.taskboard.modules.users.service import (
    DuplicateError,
    account_payload,
    admin_exists,
    promote_to_admin,
    update_account,
)
from app.taskboard.rbac import is_admin, require_login, require_permission
from app.taskboard.security import ensure_csrf_token

bp = Blueprint("api", __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _error(message: str, status: int):
    return jsonify({"error": message}), status


# ---------- Auth ----------
@bp.post("/auth/login")
def auth_login():
    data = _json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not email or not password:
        return _error("Email and password are required", 400)
    if check_rate_limit(ip):
        return _error("Too many login attempts. Please wait 5 minutes.", 429)
    record_attempt(ip)

    s = db_session()
    user, message = authenticate(s, email, password)
    if user is None:
        log_failed_login(s, email, message)
        s.commit()
        return _error(message, 401)

    login_user(s, user)
    clear_attempts(ip)
    s.commit()
    return jsonify({"success": True, "user": account_payload(user), "csrf_token": ensure_csrf_token()})


@bp.post("/auth/logout")
def auth_logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"success": True})


@bp.post("/auth/register")
def auth_register():
    s = db_session()
    try:
        entry = submit_registration(s, _json_body())
        s.commit()
    except ValueError as e:
        s.rollback()
        return _error(str(e), 400)
    return (
        jsonify(
            {
                "success": True,
                "message": "Registration submitted for approval",
                "queue_id": entry.queue_id,
            }
        ),
        201,
    )


@bp.get("/auth/queue-status")
def auth_queue_status():
    queue_id = (request.args.get("queue_id") or "").strip()
    if not queue_id:
        return _error("queue_id is required", 400)
    s = db_session()
    entry = get_entry(s, queue_id)
    if entry is None:
        return _error("Registration request not found", 404)
    return jsonify(queue_status(s, entry))


# ---------- Profile ----------
@bp.get("/profile")
@require_login
def profile_get():
    return jsonify({**account_payload(g.current_user), "csrf_token": ensure_csrf_token()})


@bp.put("/profile")
@require_login
def profile_put():
    s = db_session()
    user: User = g.current_user
    try:
        update_account(s, user, _json_body())
        s.commit()
    except DuplicateError as e:
        s.rollback()
        return _error(str(e), 409)
    except ValueError as e:
        s.rollback()
        return _error(str(e), 400)
    return jsonify({"message": "Profile updated successfully", "user": account_payload(user)})


# ---------- Admin ----------
@bp.route("/admin/promote", methods=["GET", "POST"])
def admin_promote():
    """Grant admin by email. Open only while no admin exists (first-run bootstrap)."""
    s = db_session()
    actor = getattr(g, "current_user", None)
    if admin_exists(s) and not is_admin(actor):
        if actor is None:
            return _error("Unauthorized", 401)
        g.missing_permission = "users.manage"
        current_app.logger.warning("Forbidden: promote attempt by user_id=%s", actor.id)
        return _error("Forbidden", 403)

    email = request.args.get("email") or _json_body().get("email")
    try:
        user = promote_to_admin(s, email, actor=actor)
        s.commit()
    except LookupError as e:
        s.rollback()
        return _error(str(e), 404)
    except ValueError as e:
        s.rollback()
        return _error(str(e), 400)
    return jsonify(
        {
            "success": True,
            "message": f"User {user.email} is now an ADMIN",
            "user": {"email": user.email, "role": user.role_label},
        }
    )


# ---------- Reports ----------
@bp.get("/reports/stats")
@require_permission("reports.view")
def reports_stats():
    return jsonify(report_stats(db_session()))


# ---------- Board ----------
@bp.get("/projects/<int:project_id>/data")
@require_permission("projects.view")
def project_data(project_id: int):
    s = db_session()
    project = get_project_for(s, g.current_user, project_id)
    if project is None:
        return _error("Project not found", 404)
    return jsonify(board_payload(s, project))


@bp.post("/tasks/<int:task_id>/move")
@require_permission("tasks.edit")
def task_move(task_id: int):
    s = db_session()
    task = get_task_for(s, g.current_user, task_id)
    if task is None:
        return _error("Task not found", 404)

    data = _json_body()
    try:
        list_id = int(data.get("list_id"))
        position = int(data.get("position", 0))
    except (TypeError, ValueError):
        return _error("list_id and position must be integers", 400)

    new_list = next((lst for lst in task.project.lists if lst.id == list_id), None)
    if new_list is None:
        return _error("List not found", 404)

    move_task(s, task, new_list, position, g.current_user)
    s.commit()
    return jsonify({"success": True, "task": {"id": task.id, "list_id": new_list.id, "status": task.status, "position": task.position}})


@bp.post("/tasks/<int:task_id>/status")
@require_permission("tasks.edit")
def task_status(task_id: int):
    s = db_session()
    task = get_task_for(s, g.current_user, task_id)
    if task is None:
        return _error("Task not found", 404)
    try:
        set_task_status(s, task, _json_body().get("status") or "", g.current_user)
        s.commit()
    except ValueError as e:
        s.rollback()
        return _error(str(e), 400)
    return jsonify({"success": True, "task": {"id": task.id, "list_id": task.list_id, "status": task.status}})

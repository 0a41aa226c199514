from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.taskboard.constants import ROLE_NAMES
from app.taskboard.db import db_session
from app.taskboard.models import AuditEvent, User
from app.taskboard.modules.dashboards.service import user_activity
from app.taskboard.modules.users.service import (
    admin_edit_user,
    assign_manager,
    change_role,
    delete_user,
    managers,
    users_by_role,
)
from app.taskboard.rbac import require_permission

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_user_or_404(user_id: int) -> User:
    user = db_session().get(User, user_id)
    if not user:
        abort(404)
    return user


@bp.get("/")
@require_permission("admin.view")
def index():
    return redirect(url_for("dashboards.admin_dashboard"))


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


# ============================================================================
# USER MANAGEMENT
# ============================================================================


@bp.get("/users")
@require_permission("users.manage")
def users_list():
    s = db_session()
    return render_template("admin/users/list.html", grouped=users_by_role(s), role_names=ROLE_NAMES)


@bp.get("/users/<int:user_id>")
@require_permission("users.manage")
def user_detail(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    return render_template(
        "admin/users/detail.html",
        account=user,
        activity=user_activity(s, user),
        managers=[m for m in managers(s) if m.id != user.id],
        role_names=ROLE_NAMES,
    )


@bp.post("/users/<int:user_id>/role")
@require_permission("users.manage")
def user_change_role(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    try:
        change_role(s, user, request.form.get("role") or "", admin=_current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.user_detail", user_id=user_id))
    flash(f"Role updated for {user.username}.", "success")
    return redirect(url_for("admin.user_detail", user_id=user_id))


@bp.post("/users/<int:user_id>/manager")
@require_permission("users.manage")
def user_assign_manager(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    raw = (request.form.get("manager_id") or "").strip()
    try:
        assign_manager(s, user, int(raw) if raw else None, admin=_current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.user_detail", user_id=user_id))
    flash(f"Manager updated for {user.username}.", "success")
    return redirect(url_for("admin.user_detail", user_id=user_id))


@bp.post("/users/<int:user_id>/edit")
@require_permission("users.manage")
def user_edit(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    payload = {
        "username": request.form.get("username"),
        "email": request.form.get("email"),
        "password": request.form.get("password"),
    }
    try:
        admin_edit_user(s, user, payload, admin=_current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.user_detail", user_id=user_id))
    flash(f"Account updated for {user.username}.", "success")
    return redirect(url_for("admin.user_detail", user_id=user_id))


@bp.post("/users/<int:user_id>/delete")
@require_permission("users.manage")
def user_delete(user_id: int):
    s = db_session()
    user = _get_user_or_404(user_id)
    username = user.username
    try:
        delete_user(s, user, admin=_current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.user_detail", user_id=user_id))
    flash(f"User {username} deleted.", "success")
    return redirect(url_for("admin.users_list"))

from __future__ import annotations

from flask import Blueprint, abort, g, redirect, render_template, url_for

from app.taskboard.constants import ROLE_ADMIN, ROLE_MANAGER
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.dashboards.service import (
    admin_counts,
    manager_dashboard,
    recent_users,
    report_stats,
    team_members,
    user_activity,
    user_dashboard,
)
from app.taskboard.rbac import can_view_user, require_login, require_permission

bp = Blueprint("dashboards", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/dashboard")
@require_login
def dashboard():
    role = _current_user().role_key
    if role == ROLE_ADMIN:
        return redirect(url_for("dashboards.admin_dashboard"))
    if role == ROLE_MANAGER:
        return redirect(url_for("dashboards.manager_dashboard_view"))
    return redirect(url_for("dashboards.my_dashboard"))


@bp.get("/dashboard/admin")
@require_permission("admin.view")
def admin_dashboard():
    s = db_session()
    return render_template("dashboards/admin.html", counts=admin_counts(s), recent_users=recent_users(s))


@bp.get("/dashboard/manager")
@require_permission("team.view")
def manager_dashboard_view():
    s = db_session()
    return render_template("dashboards/manager.html", data=manager_dashboard(s, _current_user()))


@bp.get("/dashboard/manager/team")
@require_permission("team.view")
def team():
    s = db_session()
    return render_template("dashboards/team.html", members=team_members(s, _current_user()))


@bp.get("/dashboard/manager/users/<int:user_id>")
@require_permission("team.view")
def team_member_detail(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if target is None:
        abort(404)
    if not can_view_user(_current_user(), target):
        g.missing_permission = "team.view"
        abort(403)
    return render_template("dashboards/member.html", member=target, activity=user_activity(s, target))


@bp.get("/dashboard/me")
@require_permission("dashboard.view")
def my_dashboard():
    s = db_session()
    return render_template("dashboards/me.html", data=user_dashboard(s, _current_user()))


@bp.get("/reports")
@require_permission("reports.view")
def reports():
    return render_template("dashboards/reports.html", stats=report_stats(db_session()))

from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.taskboard.constants import THEMES
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.users.service import update_profile
from app.taskboard.rbac import require_login

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/profile")
@require_login
def profile_get():
    return render_template("users/profile.html", user=_current_user(), themes=THEMES)


@bp.post("/profile")
@require_login
def profile_post():
    s = db_session()
    u = _current_user()
    payload = {
        "name": request.form.get("name"),
        "email": request.form.get("email"),
        "bio": request.form.get("bio"),
        "job_title": request.form.get("job_title"),
        "department": request.form.get("department"),
        "timezone": request.form.get("timezone"),
        "team_name": request.form.get("team_name"),
        "designation": request.form.get("designation"),
        "skills": request.form.get("skills"),
        "work_hours": request.form.get("work_hours"),
        "email_notifications": request.form.get("email_notifications") == "1",
        "theme": request.form.get("theme"),
    }
    try:
        update_profile(s, u, payload)
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("users.profile_get"))

    flash("Profile updated.", "success")
    return redirect(url_for("users.profile_get"))

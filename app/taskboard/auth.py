from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import func
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.taskboard.audit import record_event
from app.taskboard.constants import QUEUE_PENDING, QUEUE_REJECTED, SELF_SERVICE_ROLES
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.registration.service import (
    get_entry,
    pending_entry_for_email,
    queue_status,
    submit_registration,
)

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def clear_attempts(ip: str) -> None:
    _login_attempts.pop(ip, None)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def authenticate(s: Session, email: str, password: str) -> tuple[User | None, str | None]:
    """
    Returns (user, None) on success, otherwise (None, message).
    Applicants still in the registration queue get a specific message.
    """
    user = s.query(User).filter(func.lower(User.email) == email).one_or_none()
    if user is None:
        entry = pending_entry_for_email(s, email)
        if entry is not None and check_password_hash(entry.password_hash, password):
            if entry.status == QUEUE_PENDING:
                return None, "Your account is pending approval."
            if entry.status == QUEUE_REJECTED:
                return None, "Your registration request was rejected."
        return None, "Invalid credentials."
    if not user.is_active or not check_password_hash(user.password_hash, password):
        return None, "Invalid credentials."
    return user, None


def login_user(s: Session, user: User) -> None:
    session["user_id"] = user.id
    session.permanent = True
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))


def log_failed_login(s: Session, email: str, message: str) -> None:
    current_app.logger.info("Login failed (email=%s request_id=%s): %s", email, getattr(g, "request_id", None), message)
    record_event(
        s,
        actor=None,
        action="auth.login_failed",
        entity_type="User",
        entity_id=email,
        reason=message,
        metadata={"email": email},
    )


def _safe_next(nxt: str) -> str | None:
    # Only local paths, to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


@bp.get("/auth/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("dashboards.dashboard"))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/auth/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    record_attempt(ip)

    s = db_session()
    user, message = authenticate(s, email, password)
    if user is None:
        log_failed_login(s, email, message)
        s.commit()
        flash(message, "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    login_user(s, user)
    clear_attempts(ip)
    s.commit()
    return redirect(_safe_next(nxt) or url_for("dashboards.dashboard"))


@bp.post("/auth/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    flash("Signed out.", "success")
    return redirect(url_for("auth.login_get"))


@bp.get("/register")
def register_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("dashboards.dashboard"))
    return render_template("auth/register.html", roles=SELF_SERVICE_ROLES, form={})


@bp.post("/register")
def register_post():
    s = db_session()
    payload = {
        "full_name": request.form.get("full_name"),
        "username": request.form.get("username"),
        "email": request.form.get("email"),
        "password": request.form.get("password"),
        "role": request.form.get("role"),
        "department": request.form.get("department"),
    }
    if payload["password"] != (request.form.get("confirm_password") or payload["password"]):
        flash("Passwords do not match.", "danger")
        return render_template("auth/register.html", roles=SELF_SERVICE_ROLES, form=payload), 400

    try:
        entry = submit_registration(s, payload)
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return render_template("auth/register.html", roles=SELF_SERVICE_ROLES, form=payload), 400

    return redirect(url_for("auth.queue", queue_id=entry.queue_id))


@bp.get("/auth/queue")
def queue():
    queue_id = (request.args.get("queue_id") or "").strip()
    if not queue_id:
        abort(400)
    s = db_session()
    entry = get_entry(s, queue_id)
    if entry is None:
        abort(404)
    return render_template("auth/queue.html", status=queue_status(s, entry))

from __future__ import annotations

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.taskboard.constants import QUEUE_PENDING, QUEUE_STATUSES, ROLE_NAMES
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.registration.service import (
    approval_stats,
    approve_registration,
    batch_approve,
    batch_reject,
    list_registrations,
    reject_registration,
)
from app.taskboard.rbac import require_permission

bp = Blueprint("registration", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/approvals")
@require_permission("approvals.manage")
def approvals_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or QUEUE_PENDING).strip().upper()
    return render_template(
        "admin/approvals.html",
        entries=list_registrations(s, search=search, status=status),
        stats=approval_stats(s),
        search=search,
        status=status,
        statuses=("ALL",) + QUEUE_STATUSES,
        role_names=ROLE_NAMES,
    )


@bp.post("/approvals/<queue_id>/approve")
@require_permission("approvals.manage")
def approvals_approve(queue_id: str):
    s = db_session()
    try:
        user = approve_registration(
            s,
            queue_id,
            admin=_current_user(),
            role=request.form.get("role"),
            department=request.form.get("department"),
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("registration.approvals_list"))
    flash(f"Approved {user.username}.", "success")
    return redirect(url_for("registration.approvals_list"))


@bp.post("/approvals/<queue_id>/reject")
@require_permission("approvals.manage")
def approvals_reject(queue_id: str):
    s = db_session()
    try:
        entry = reject_registration(s, queue_id, admin=_current_user(), reason=request.form.get("reason"))
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("registration.approvals_list"))
    flash(f"Rejected {entry.username}.", "success")
    return redirect(url_for("registration.approvals_list"))


@bp.post("/approvals/batch")
@require_permission("approvals.manage")
def approvals_batch():
    """Batch approve/reject. JSON in, JSON out; form posts flash and redirect."""
    s = db_session()
    if request.is_json:
        data = request.get_json(silent=True) or {}
        action = (data.get("action") or "").strip().lower()
        queue_ids = [str(q) for q in (data.get("queue_ids") or [])]
        reason = data.get("reason") or "Batch Rejection"
    else:
        action = (request.form.get("action") or "").strip().lower()
        queue_ids = request.form.getlist("queue_ids")
        reason = request.form.get("reason") or "Batch Rejection"

    if action not in ("approve", "reject") or not queue_ids:
        message = "Select at least one request and an action."
        if request.is_json:
            return jsonify({"success": False, "error": message}), 400
        flash(message, "danger")
        return redirect(url_for("registration.approvals_list"))

    admin = _current_user()
    if action == "approve":
        result = batch_approve(s, queue_ids, admin=admin)
    else:
        result = batch_reject(s, queue_ids, admin=admin, reason=reason)
    s.commit()
    current_app.logger.info(
        "Batch %s by admin_id=%s: %s ok, %s failed", action, admin.id, result["success_count"], result["fail_count"]
    )

    if request.is_json:
        return jsonify(result)
    category = "success" if not result["fail_count"] else "warning"
    flash(f"{result['success_count']} processed, {result['fail_count']} failed.", category)
    return redirect(url_for("registration.approvals_list"))

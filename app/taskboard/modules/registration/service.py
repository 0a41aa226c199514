"""
Registration queue service.
Handles signup validation, queue position, and admin approve/reject decisions.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.taskboard.audit import record_event
from app.taskboard.constants import (
    QUEUE_APPROVED,
    QUEUE_AVG_WAIT,
    QUEUE_ESTIMATED_APPROVAL,
    QUEUE_PENDING,
    QUEUE_REJECTED,
    ROLE_NAMES,
    SELF_SERVICE_ROLES,
)
from app.taskboard.models import Profile, User
from app.taskboard.seed import get_role
from app.taskboard.utils import clean, is_valid_email, start_of_today

from .models import AdminApprovalLog, UserRegistrationQueue

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


def validate_registration_payload(payload: dict) -> list[str]:
    """Validate a signup payload. Returns list of errors."""
    errors = []
    username = clean(payload.get("username")) or ""
    if not 3 <= len(username) <= 50:
        errors.append("Username must be between 3 and 50 characters.")
    email = (clean(payload.get("email")) or "").lower()
    if not is_valid_email(email):
        errors.append("A valid email address is required.")
    password = payload.get("password") or ""
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    full_name = clean(payload.get("full_name"))
    if full_name and len(full_name) > 100:
        errors.append("Full name must be at most 100 characters.")
    role = (clean(payload.get("role")) or "USER").upper()
    if role not in SELF_SERVICE_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(SELF_SERVICE_ROLES)}")
    return errors


def _identity_taken(s: Session, email: str, username: str) -> bool:
    user = s.query(User.id).filter(or_(func.lower(User.email) == email, User.username == username)).first()
    if user:
        return True
    pending = (
        s.query(UserRegistrationQueue.queue_id)
        .filter(UserRegistrationQueue.status == QUEUE_PENDING)
        .filter(or_(func.lower(UserRegistrationQueue.email) == email, UserRegistrationQueue.username == username))
        .first()
    )
    return pending is not None


def submit_registration(s: Session, payload: dict) -> UserRegistrationQueue:
    """Queue a signup for admin review. Raises ValueError on invalid/duplicate input."""
    errors = validate_registration_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))

    username = clean(payload.get("username")) or ""
    email = (clean(payload.get("email")) or "").lower()
    if _identity_taken(s, email, username):
        raise ValueError("User with this email or username already exists")

    entry = UserRegistrationQueue(
        full_name=clean(payload.get("full_name")),
        username=username,
        email=email,
        password_hash=generate_password_hash(payload["password"]),
        role=(clean(payload.get("role")) or "USER").upper(),
        department=clean(payload.get("department")),
        status=QUEUE_PENDING,
        submitted_at=datetime.utcnow(),
    )
    s.add(entry)
    s.flush()
    logger.info("Registration queued: queue_id=%s username=%s", entry.queue_id, entry.username)
    return entry


def get_entry(s: Session, queue_id: str) -> UserRegistrationQueue | None:
    if not queue_id:
        return None
    return s.get(UserRegistrationQueue, queue_id)


def pending_entry_for_email(s: Session, email: str) -> UserRegistrationQueue | None:
    """Most recent queue entry for an email that has not become an account."""
    return (
        s.query(UserRegistrationQueue)
        .filter(func.lower(UserRegistrationQueue.email) == email.lower())
        .filter(UserRegistrationQueue.status != QUEUE_APPROVED)
        .order_by(UserRegistrationQueue.submitted_at.desc())
        .first()
    )


def queue_status(s: Session, entry: UserRegistrationQueue, now: datetime | None = None) -> dict:
    """Position/progress figures for the applicant's waiting page."""
    position = (
        s.query(func.count(UserRegistrationQueue.queue_id))
        .filter(UserRegistrationQueue.status == QUEUE_PENDING)
        .filter(UserRegistrationQueue.submitted_at < entry.submitted_at)
        .scalar()
    ) + 1
    total_queue = s.query(func.count(UserRegistrationQueue.queue_id)).filter(UserRegistrationQueue.status == QUEUE_PENDING).scalar()
    approvals_today = (
        s.query(func.count(UserRegistrationQueue.queue_id))
        .filter(UserRegistrationQueue.status == QUEUE_APPROVED)
        .filter(UserRegistrationQueue.reviewed_at >= start_of_today(now))
        .scalar()
    )

    if total_queue:
        progress = round((total_queue - position + 1) / total_queue * 100)
        progress = max(5, min(95, progress))
    else:
        progress = 0

    return {
        "queue_id": entry.queue_id,
        "status": entry.status,
        "username": entry.username,
        "email": entry.email,
        "position": position,
        "total_queue": total_queue,
        "users_ahead": max(0, position - 1),
        "approvals_today": approvals_today,
        "avg_wait_time": QUEUE_AVG_WAIT,
        "submitted_at": entry.submitted_at.isoformat(),
        "estimated_approval_time": QUEUE_ESTIMATED_APPROVAL,
        "approval_percentage": progress,
        "rejection_reason": entry.rejection_reason if entry.status == QUEUE_REJECTED else None,
    }


def list_registrations(s: Session, search: str | None = None, status: str | None = QUEUE_PENDING) -> list[UserRegistrationQueue]:
    q = s.query(UserRegistrationQueue)
    status = (status or "").strip().upper()
    if status and status != "ALL":
        q = q.filter(UserRegistrationQueue.status == status)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(UserRegistrationQueue.full_name).like(like),
                func.lower(UserRegistrationQueue.email).like(like),
                func.lower(UserRegistrationQueue.username).like(like),
            )
        )
    return q.order_by(UserRegistrationQueue.submitted_at.desc()).all()


def approval_stats(s: Session, now: datetime | None = None) -> dict:
    total_pending = s.query(func.count(UserRegistrationQueue.queue_id)).filter(UserRegistrationQueue.status == QUEUE_PENDING).scalar()
    approved_today = (
        s.query(func.count(UserRegistrationQueue.queue_id))
        .filter(UserRegistrationQueue.status == QUEUE_APPROVED)
        .filter(UserRegistrationQueue.reviewed_at >= start_of_today(now))
        .scalar()
    )
    total_processed = (
        s.query(func.count(UserRegistrationQueue.queue_id))
        .filter(UserRegistrationQueue.status != QUEUE_PENDING)
        .scalar()
    )

    # Average over the 100 most recent decisions.
    reviewed = (
        s.query(UserRegistrationQueue.submitted_at, UserRegistrationQueue.reviewed_at)
        .filter(UserRegistrationQueue.status != QUEUE_PENDING)
        .filter(UserRegistrationQueue.reviewed_at.isnot(None))
        .order_by(UserRegistrationQueue.reviewed_at.desc())
        .limit(100)
        .all()
    )
    if reviewed:
        hours = [(r.reviewed_at - r.submitted_at).total_seconds() / 3600 for r in reviewed]
        avg_wait = f"{sum(hours) / len(hours):.1f} Hours"
    else:
        avg_wait = "N/A"

    return {
        "total_pending": total_pending,
        "approved_today": approved_today,
        "total_processed": total_processed,
        "avg_wait_time": avg_wait,
    }


def _require_pending(s: Session, queue_id: str) -> UserRegistrationQueue:
    entry = get_entry(s, queue_id)
    if entry is None:
        raise ValueError("Request not found")
    if entry.status != QUEUE_PENDING:
        raise ValueError(f"Request already {entry.status.lower()}")
    return entry


def approve_registration(
    s: Session,
    queue_id: str,
    *,
    admin: User,
    role: str | None = None,
    department: str | None = None,
) -> User:
    """Turn a pending request into an active account. Raises ValueError on failure."""
    entry = _require_pending(s, queue_id)

    existing = (
        s.query(User.id)
        .filter(or_(func.lower(User.email) == entry.email.lower(), User.username == entry.username))
        .first()
    )
    if existing:
        raise ValueError("User already exists")

    role_key = (clean(role) or entry.role).lower()
    if role_key not in ROLE_NAMES:
        raise ValueError(f"Invalid role: {role}")

    now = datetime.utcnow()
    user = User(
        username=entry.username,
        email=entry.email,
        password_hash=entry.password_hash,
        is_active=True,
        registration_status="ACTIVE",
        approved_at=now,
        approved_by_user_id=admin.id,
        created_at=now,
        updated_at=now,
    )
    user.roles.append(get_role(s, role_key))
    user.profile = Profile(
        department=clean(department) or entry.department,
        job_title=ROLE_NAMES.get(entry.role.lower(), entry.role),
    )
    s.add(user)

    entry.status = QUEUE_APPROVED
    entry.reviewed_at = now
    entry.reviewed_by_user_id = admin.id
    s.add(AdminApprovalLog(admin_user_id=admin.id, queue_id=entry.queue_id, action=QUEUE_APPROVED, notes="Approved via Admin Dashboard"))
    s.flush()

    record_event(
        s,
        actor=admin,
        action="registration.approve",
        entity_type="UserRegistrationQueue",
        entity_id=entry.queue_id,
        metadata={"username": user.username, "user_id": user.id, "role": role_key},
    )
    logger.info("Registration approved: queue_id=%s user_id=%s by admin_id=%s", entry.queue_id, user.id, admin.id)
    return user


def reject_registration(s: Session, queue_id: str, *, admin: User, reason: str | None = None) -> UserRegistrationQueue:
    entry = _require_pending(s, queue_id)
    reason = clean(reason)

    entry.status = QUEUE_REJECTED
    entry.reviewed_at = datetime.utcnow()
    entry.reviewed_by_user_id = admin.id
    entry.rejection_reason = reason
    s.add(AdminApprovalLog(admin_user_id=admin.id, queue_id=entry.queue_id, action=QUEUE_REJECTED, notes=reason))
    s.flush()

    record_event(
        s,
        actor=admin,
        action="registration.reject",
        entity_type="UserRegistrationQueue",
        entity_id=entry.queue_id,
        reason=reason,
        metadata={"username": entry.username},
    )
    logger.info("Registration rejected: queue_id=%s by admin_id=%s", entry.queue_id, admin.id)
    return entry


def batch_approve(s: Session, queue_ids: Iterable[str], *, admin: User) -> dict:
    """Approve each id; failures are validated before any write, so they leave no partial rows."""
    success_count = 0
    fail_count = 0
    for queue_id in queue_ids:
        try:
            approve_registration(s, queue_id, admin=admin)
            success_count += 1
        except ValueError as e:
            logger.warning("Batch approve skipped queue_id=%s: %s", queue_id, e)
            fail_count += 1
    return {"success": True, "success_count": success_count, "fail_count": fail_count}


def batch_reject(s: Session, queue_ids: Iterable[str], *, admin: User, reason: str = "Batch Rejection") -> dict:
    success_count = 0
    fail_count = 0
    for queue_id in queue_ids:
        try:
            reject_registration(s, queue_id, admin=admin, reason=reason)
            success_count += 1
        except ValueError as e:
            logger.warning("Batch reject skipped queue_id=%s: %s", queue_id, e)
            fail_count += 1
    return {"success": True, "success_count": success_count, "fail_count": fail_count}

"""
User account and profile service.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.taskboard.audit import record_event
from app.taskboard.constants import ROLE_ADMIN, ROLE_MANAGER, ROLE_NAMES, ROLE_PRECEDENCE, THEMES
from app.taskboard.models import Profile, Role, User
from app.taskboard.modules.projects.models import Project
from app.taskboard.modules.tasks.models import Task
from app.taskboard.seed import get_role
from app.taskboard.utils import clean, is_valid_email

logger = logging.getLogger(__name__)


class DuplicateError(ValueError):
    """Username or email already belongs to another account."""


def _ensure_unique(s: Session, user: User | None, *, username: str | None = None, email: str | None = None) -> None:
    exclude_id = user.id if user else -1
    if username is not None:
        taken = s.query(User.id).filter(User.username == username, User.id != exclude_id).first()
        if taken:
            raise DuplicateError("Username is already taken")
    if email is not None:
        taken = s.query(User.id).filter(func.lower(User.email) == email, User.id != exclude_id).first()
        if taken:
            raise DuplicateError("Email is already in use")


def account_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role_label,
        "roles": [ROLE_NAMES[k] for k in ROLE_PRECEDENCE if k in user.role_keys],
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def update_account(s: Session, user: User, payload: dict) -> User:
    """Own username/email change. Raises ValueError, or DuplicateError for taken values."""
    username = clean(payload.get("username"))
    email = (clean(payload.get("email")) or "").lower()

    if not username or not email:
        raise ValueError("Username and email are required")
    if len(username) < 3:
        raise ValueError("Username must be at least 3 characters")
    if not is_valid_email(email):
        raise ValueError("Invalid email format")

    _ensure_unique(s, user, username=username, email=email)
    user.username = username
    user.email = email
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="user.update_account", entity_type="User", entity_id=str(user.id))
    return user


def update_profile(s: Session, user: User, payload: dict) -> Profile:
    """Profile page save; the profile row is created on first save."""
    name = clean(payload.get("name")) or ""
    email = (clean(payload.get("email")) or "").lower()
    bio = clean(payload.get("bio"))
    theme = clean(payload.get("theme")) or "system"

    errors = []
    if not 2 <= len(name) <= 100:
        errors.append("Name must be between 2 and 100 characters.")
    if not is_valid_email(email):
        errors.append("Invalid email address.")
    if bio and len(bio) > 500:
        errors.append("Bio must be at most 500 characters.")
    if theme not in THEMES:
        errors.append(f"Theme must be one of: {', '.join(THEMES)}")
    if errors:
        raise ValueError(" ".join(errors))

    _ensure_unique(s, user, username=name, email=email)
    user.username = name
    user.email = email
    user.updated_at = datetime.utcnow()

    profile = user.profile
    if profile is None:
        profile = Profile()
        user.profile = profile
    profile.bio = bio
    profile.job_title = clean(payload.get("job_title"))
    profile.department = clean(payload.get("department"))
    profile.timezone = clean(payload.get("timezone"))
    profile.team_name = clean(payload.get("team_name"))
    profile.designation = clean(payload.get("designation"))
    profile.skills = clean(payload.get("skills"))
    profile.work_hours = clean(payload.get("work_hours"))
    profile.email_notifications = bool(payload.get("email_notifications"))
    profile.theme = theme
    profile.updated_at = datetime.utcnow()

    record_event(s, actor=user, action="user.update_profile", entity_type="User", entity_id=str(user.id))
    return profile


# ---------- Admin user management ----------


def users_by_role(s: Session) -> dict[str, list[dict]]:
    """All users grouped by effective role, with owned project and assigned task counts."""
    project_counts = dict(
        s.query(Project.created_by_user_id, func.count(Project.id)).group_by(Project.created_by_user_id).all()
    )
    task_counts = dict(
        s.query(Task.assigned_to_user_id, func.count(Task.id))
        .filter(Task.assigned_to_user_id.isnot(None))
        .group_by(Task.assigned_to_user_id)
        .all()
    )
    grouped: dict[str, list[dict]] = {key: [] for key in ROLE_PRECEDENCE}
    for user in s.query(User).order_by(User.username.asc()).all():
        grouped[user.role_key].append(
            {
                "user": user,
                "project_count": project_counts.get(user.id, 0),
                "task_count": task_counts.get(user.id, 0),
            }
        )
    return grouped


def managers(s: Session) -> list[User]:
    return [u for u in s.query(User).order_by(User.username.asc()).all() if u.role_key in (ROLE_ADMIN, ROLE_MANAGER)]


def change_role(s: Session, target: User, role_key: str, *, admin: User) -> User:
    role_key = (clean(role_key) or "").lower()
    if role_key not in ROLE_NAMES:
        raise ValueError(f"Invalid role: {role_key}")
    if target.id == admin.id and role_key != ROLE_ADMIN:
        raise ValueError("You cannot remove your own admin role.")

    before = sorted(target.role_keys)
    target.roles.clear()
    target.roles.append(get_role(s, role_key))
    target.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="user.change_role",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"before": before, "after": [role_key]},
    )
    logger.info("Role changed: user_id=%s %s -> %s by admin_id=%s", target.id, before, role_key, admin.id)
    return target


def assign_manager(s: Session, target: User, manager_id: int | None, *, admin: User) -> User:
    manager = None
    if manager_id is not None:
        if manager_id == target.id:
            raise ValueError("A user cannot manage themselves.")
        manager = s.get(User, manager_id)
        if manager is None:
            raise ValueError("Manager not found.")
        if manager.role_key not in (ROLE_ADMIN, ROLE_MANAGER):
            raise ValueError("Selected user is not a manager.")

    target.manager = manager
    target.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="user.assign_manager",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"manager_id": manager.id if manager else None},
    )
    return target


def admin_edit_user(s: Session, target: User, payload: dict, *, admin: User) -> User:
    username = clean(payload.get("username")) or ""
    email = (clean(payload.get("email")) or "").lower()
    password = payload.get("password") or ""

    errors = []
    if len(username) < 3:
        errors.append("Username must be at least 3 characters.")
    if not is_valid_email(email):
        errors.append("Invalid email address.")
    if password and len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if errors:
        raise ValueError(" ".join(errors))

    _ensure_unique(s, target, username=username, email=email)
    target.username = username
    target.email = email
    if password:
        target.password_hash = generate_password_hash(password)
    target.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="user.update",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"username": username, "email": email, "password_reset": bool(password)},
    )
    return target


def delete_user(s: Session, target: User, *, admin: User) -> None:
    if target.id == admin.id:
        raise ValueError("You cannot delete your own account.")
    record_event(
        s,
        actor=admin,
        action="user.delete",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"username": target.username, "email": target.email},
    )
    s.delete(target)
    logger.info("User deleted: user_id=%s by admin_id=%s", target.id, admin.id)


def admin_exists(s: Session) -> bool:
    return (
        s.query(User.id)
        .join(User.roles)
        .filter(Role.key == ROLE_ADMIN)
        .first()
        is not None
    )


def promote_to_admin(s: Session, email: str | None, *, actor: User | None = None) -> User:
    """Grant the admin role by email. Used by the API, the CLI and scripts/promote_admin.py."""
    email = (clean(email) or "").lower()
    if not email:
        raise ValueError("Email is required")
    user = s.query(User).filter(func.lower(User.email) == email).one_or_none()
    if user is None:
        raise LookupError(f"User not found: {email}")

    admin_role = get_role(s, ROLE_ADMIN)
    if admin_role not in user.roles:
        user.roles.append(admin_role)
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.promote_admin",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    logger.info("Promoted to admin: user_id=%s", user.id)
    return user

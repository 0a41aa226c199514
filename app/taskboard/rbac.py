from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for

from app.taskboard.constants import ROLE_ADMIN, ROLE_MANAGER
from app.taskboard.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def is_admin(user: User | None) -> bool:
    return bool(user and user.is_active and user.role_key == ROLE_ADMIN)


def is_privileged(user: User | None) -> bool:
    """Admins and managers see every project."""
    return bool(user and user.is_active and user.role_key in (ROLE_ADMIN, ROLE_MANAGER))


def can_view_user(viewer: User | None, target: User) -> bool:
    if not viewer or not viewer.is_active:
        return False
    if viewer.role_key == ROLE_ADMIN or viewer.id == target.id:
        return True
    return viewer.role_key == ROLE_MANAGER and target.manager_id == viewer.id


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            if _is_api_request():
                return jsonify({"error": "Unauthorized"}), 401
            nxt = request.full_path or request.path
            # Avoid trailing '?' from full_path when there is no query string.
            if nxt.endswith("?"):
                nxt = nxt[:-1]
            return redirect(url_for("auth.login_get", next=nxt))
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        @require_login
        def wrapped(*args: Any, **kwargs: Any):
            user: User = g.current_user
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                if _is_api_request():
                    return jsonify({"error": "Forbidden"}), 403
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.projects.service import list_projects_for
from app.taskboard.modules.todos.service import (
    create_todo,
    delete_todo,
    list_assigned_project_tasks,
    list_todos,
    toggle_todo,
)
from app.taskboard.rbac import require_permission

bp = Blueprint("todos", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/todos")
@require_permission("todos.manage")
def todos_list():
    s = db_session()
    u = _current_user()
    return render_template(
        "todos/list.html",
        todos=list_todos(s, u),
        assigned_tasks=list_assigned_project_tasks(s, u),
        projects=list_projects_for(s, u),
    )


@bp.post("/todos")
@require_permission("todos.manage")
def todos_create():
    s = db_session()
    try:
        create_todo(
            s,
            _current_user(),
            request.form.get("content"),
            project_id=request.form.get("project_id", type=int),
            duration=request.form.get("duration"),
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    return redirect(url_for("todos.todos_list"))


def _owner_action(action, todo_id: int):
    s = db_session()
    u = _current_user()
    try:
        action(s, todo_id, u)
        s.commit()
    except LookupError:
        abort(404)
    except PermissionError:
        s.rollback()
        current_app.logger.warning("Todo %s: user_id=%s is not the owner", todo_id, u.id)
        abort(403)
    return redirect(url_for("todos.todos_list"))


@bp.post("/todos/<int:todo_id>/toggle")
@require_permission("todos.manage")
def todos_toggle(todo_id: int):
    return _owner_action(toggle_todo, todo_id)


@bp.post("/todos/<int:todo_id>/delete")
@require_permission("todos.manage")
def todos_delete(todo_id: int):
    return _owner_action(delete_todo, todo_id)

from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.taskboard.constants import TASK_PRIORITIES, TASK_STATUSES
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project, TaskList
from app.taskboard.modules.projects.service import assignable_users, get_project_for, list_projects_for
from app.taskboard.modules.tasks.models import Subtask, Task
from app.taskboard.modules.tasks.service import (
    ESTIMATION_UNITS,
    add_comment,
    create_subtask,
    create_task,
    delete_subtask,
    delete_task,
    get_my_tasks,
    get_task_for,
    move_task,
    set_task_status,
    toggle_subtask,
    update_task,
)
from app.taskboard.rbac import require_permission

bp = Blueprint("tasks", __name__)

_TASK_FIELDS = (
    "title",
    "description",
    "priority",
    "status",
    "assigned_to_id",
    "due_date",
    "due_time",
    "estimation_value",
    "estimation_unit",
)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _task_or_404(task_id: int) -> Task:
    task = get_task_for(db_session(), _current_user(), task_id)
    if task is None:
        abort(404)
    return task


def _project_or_404(project_id: int) -> Project:
    project = get_project_for(db_session(), _current_user(), project_id)
    if project is None:
        abort(404)
    return project


def _task_payload() -> dict:
    return {key: request.form.get(key) for key in _TASK_FIELDS}


def _target_list(project: Project, list_id: str | None, status: str | None) -> TaskList:
    """Explicit list id, else the list named after the status, else the first list."""
    if list_id:
        for lst in project.lists:
            if str(lst.id) == list_id:
                return lst
        abort(404)
    for lst in project.lists:
        if lst.name == status:
            return lst
    if not project.lists:
        abort(404)
    return project.lists[0]


def _form_context(**extra) -> dict:
    s = db_session()
    return {
        "users": assignable_users(s),
        "priorities": TASK_PRIORITIES,
        "statuses": TASK_STATUSES,
        "estimation_units": ESTIMATION_UNITS,
        **extra,
    }


@bp.get("/my-tasks")
@require_permission("projects.view")
def my_tasks():
    s = db_session()
    return render_template("tasks/my_tasks.html", tasks=get_my_tasks(s, _current_user()))


# ---------- New ----------
@bp.get("/tasks/new")
@require_permission("tasks.edit")
def task_new_get():
    s = db_session()
    project_id = request.args.get("project_id", type=int)
    project = _project_or_404(project_id) if project_id else None
    return render_template(
        "tasks/new.html",
        **_form_context(
            project=project,
            projects=list_projects_for(s, _current_user()),
            list_id=request.args.get("list_id") or "",
            form={},
        ),
    )


@bp.post("/tasks/new")
@require_permission("tasks.edit")
def task_new_post():
    s = db_session()
    u = _current_user()
    project = _project_or_404(request.form.get("project_id", type=int) or 0)
    payload = _task_payload()
    task_list = _target_list(project, request.form.get("list_id"), payload.get("status"))
    if not payload.get("status") and task_list.name in TASK_STATUSES:
        payload["status"] = task_list.name

    try:
        task = create_task(s, task_list, payload, u)
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("tasks.task_new_get", project_id=project.id, list_id=request.form.get("list_id") or None))

    flash("Task created.", "success")
    if request.form.get("return_to") == "board":
        return redirect(url_for("projects.project_board", project_id=project.id))
    return redirect(url_for("tasks.task_detail", task_id=task.id))


# ---------- Detail / edit ----------
@bp.get("/tasks/<int:task_id>")
@require_permission("projects.view")
def task_detail(task_id: int):
    task = _task_or_404(task_id)
    return render_template("tasks/detail.html", **_form_context(task=task))


@bp.post("/tasks/<int:task_id>/edit")
@require_permission("tasks.edit")
def task_edit(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    try:
        update_task(s, task, _task_payload(), _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("tasks.task_detail", task_id=task_id))
    flash("Task updated.", "success")
    return redirect(url_for("tasks.task_detail", task_id=task_id))


@bp.post("/tasks/<int:task_id>/delete")
@require_permission("tasks.edit")
def task_delete(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    project_id = task.project.id
    delete_task(s, task, _current_user())
    s.commit()
    flash("Task deleted.", "success")
    return redirect(url_for("projects.project_board", project_id=project_id))


@bp.post("/tasks/<int:task_id>/move")
@require_permission("tasks.edit")
def task_move(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    project = task.project
    new_list = _target_list(project, request.form.get("list_id"), None)
    position = request.form.get("position", type=int)
    try:
        move_task(s, task, new_list, len(new_list.tasks) if position is None else position, _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    return redirect(url_for("projects.project_board", project_id=project.id))


@bp.post("/tasks/<int:task_id>/status")
@require_permission("tasks.edit")
def task_status(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    try:
        set_task_status(s, task, request.form.get("status") or "", _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    nxt = (request.form.get("next") or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("tasks.task_detail", task_id=task_id))


# ---------- Comments ----------
@bp.post("/tasks/<int:task_id>/comments")
@require_permission("tasks.edit")
def task_comment_add(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    try:
        add_comment(s, task, request.form.get("comment_text"), _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    return redirect(url_for("tasks.task_detail", task_id=task_id))


# ---------- Subtasks ----------
def _subtask_or_404(task: Task, subtask_id: int) -> Subtask:
    subtask = next((st for st in task.subtasks if st.id == subtask_id), None)
    if subtask is None:
        abort(404)
    return subtask


@bp.post("/tasks/<int:task_id>/subtasks")
@require_permission("tasks.edit")
def subtask_add(task_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    try:
        create_subtask(s, task, request.form.get("title"))
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
    return redirect(url_for("tasks.task_detail", task_id=task_id))


@bp.post("/tasks/<int:task_id>/subtasks/<int:subtask_id>/toggle")
@require_permission("tasks.edit")
def subtask_toggle(task_id: int, subtask_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    toggle_subtask(_subtask_or_404(task, subtask_id))
    s.commit()
    return redirect(url_for("tasks.task_detail", task_id=task_id))


@bp.post("/tasks/<int:task_id>/subtasks/<int:subtask_id>/delete")
@require_permission("tasks.edit")
def subtask_delete(task_id: int, subtask_id: int):
    s = db_session()
    task = _task_or_404(task_id)
    delete_subtask(s, _subtask_or_404(task, subtask_id))
    s.commit()
    return redirect(url_for("tasks.task_detail", task_id=task_id))

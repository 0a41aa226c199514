from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.taskboard.constants import TASK_PRIORITIES, TASK_STATUSES
from app.taskboard.db import db_session
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project
from app.taskboard.modules.projects.service import (
    add_member,
    assignable_users,
    can_manage_project,
    complete_project,
    create_project,
    delete_project,
    get_project_for,
    list_members,
    list_projects_for,
    remove_member,
    update_project,
)
from app.taskboard.rbac import require_permission

bp = Blueprint("projects", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _project_or_404(project_id: int) -> Project:
    project = get_project_for(db_session(), _current_user(), project_id)
    if project is None:
        abort(404)
    return project


# ---------- List ----------
@bp.get("/projects")
@require_permission("projects.view")
def projects_list():
    s = db_session()
    return render_template("projects/list.html", projects=list_projects_for(s, _current_user()))


# ---------- New ----------
@bp.get("/projects/new")
@require_permission("projects.create")
def projects_new_get():
    return render_template("projects/new.html", form={})


@bp.post("/projects/new")
@require_permission("projects.create")
def projects_new_post():
    s = db_session()
    payload = {"name": request.form.get("name"), "description": request.form.get("description")}
    try:
        project = create_project(s, payload, _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return render_template("projects/new.html", form=payload), 400

    flash("Project created.", "success")
    return redirect(url_for("projects.project_detail", project_id=project.id))


# ---------- Detail / board ----------
@bp.get("/projects/<int:project_id>")
@require_permission("projects.view")
def project_detail(project_id: int):
    project = _project_or_404(project_id)
    return render_template(
        "projects/detail.html",
        project=project,
        members=list_members(project),
        can_manage=can_manage_project(_current_user(), project),
    )


@bp.get("/projects/<int:project_id>/board")
@require_permission("projects.view")
def project_board(project_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    return render_template(
        "projects/board.html",
        project=project,
        users=assignable_users(s),
        priorities=TASK_PRIORITIES,
        statuses=TASK_STATUSES,
    )


# ---------- Edit ----------
@bp.get("/projects/<int:project_id>/edit")
@require_permission("projects.edit")
def project_edit_get(project_id: int):
    project = _project_or_404(project_id)
    return render_template("projects/edit.html", project=project)


@bp.post("/projects/<int:project_id>/edit")
@require_permission("projects.edit")
def project_edit_post(project_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    payload = {"name": request.form.get("name"), "description": request.form.get("description")}
    try:
        update_project(s, project, payload, _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("projects.project_edit_get", project_id=project_id))

    flash("Project updated.", "success")
    return redirect(url_for("projects.project_detail", project_id=project_id))


@bp.post("/projects/<int:project_id>/complete")
@require_permission("projects.edit")
def project_complete(project_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    try:
        complete_project(s, project, _current_user())
        s.commit()
    except PermissionError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("projects.project_detail", project_id=project_id))
    flash("Project marked as completed.", "success")
    return redirect(url_for("projects.project_detail", project_id=project_id))


@bp.post("/projects/<int:project_id>/delete")
@require_permission("projects.edit")
def project_delete(project_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    try:
        delete_project(s, project, _current_user())
        s.commit()
    except PermissionError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("projects.project_detail", project_id=project_id))
    flash("Project deleted.", "success")
    return redirect(url_for("projects.projects_list"))


# ---------- Members ----------
@bp.post("/projects/<int:project_id>/members")
@require_permission("projects.edit")
def project_member_add(project_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    try:
        member = add_member(s, project, request.form.get("email") or "", _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("projects.project_detail", project_id=project_id))
    flash(f"{member.user.username} added to the project.", "success")
    return redirect(url_for("projects.project_detail", project_id=project_id))


@bp.post("/projects/<int:project_id>/members/<int:user_id>/remove")
@require_permission("projects.edit")
def project_member_remove(project_id: int, user_id: int):
    s = db_session()
    project = _project_or_404(project_id)
    try:
        remove_member(s, project, user_id, _current_user())
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("projects.project_detail", project_id=project_id))
    flash("Member removed.", "success")
    return redirect(url_for("projects.project_detail", project_id=project_id))

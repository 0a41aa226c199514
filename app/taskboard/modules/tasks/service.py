"""
Tasks service layer.
Task CRUD, kanban moves, status changes, subtasks, comments and task history.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.taskboard.audit import record_event
from app.taskboard.constants import TASK_PRIORITIES, TASK_STATUSES
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project, TaskList
from app.taskboard.modules.projects.service import can_access_project
from app.taskboard.utils import clean, parse_due

from .models import Subtask, Task, TaskComment, TaskHistory

logger = logging.getLogger(__name__)

ESTIMATION_UNITS = ("minutes", "hours", "days", "weeks")


def _estimation(payload: dict) -> str | None:
    value = clean(payload.get("estimation_value"))
    if not value:
        return clean(payload.get("estimation"))
    unit = clean(payload.get("estimation_unit")) or "hours"
    return f"{value} {unit}"


def parse_task_payload(payload: dict) -> tuple[dict, list[str]]:
    """Normalize a task form/JSON payload. Returns (fields, errors)."""
    errors: list[str] = []

    title = clean(payload.get("title")) or ""
    if not title:
        errors.append("Title is required.")
    elif len(title) > 200:
        errors.append("Title must be at most 200 characters.")

    priority = clean(payload.get("priority")) or "Medium"
    if priority not in TASK_PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(TASK_PRIORITIES)}")

    status = clean(payload.get("status")) or "Pending"
    if status not in TASK_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(TASK_STATUSES)}")

    assigned_raw = clean(payload.get("assigned_to_id"))
    assigned_to_id = None
    if assigned_raw:
        try:
            assigned_to_id = int(assigned_raw)
        except ValueError:
            errors.append("Invalid assignee.")

    due_date = None
    try:
        due_date = parse_due(payload.get("due_date"), payload.get("due_time"))
    except ValueError:
        errors.append("Due date must be YYYY-MM-DD (time HH:MM).")

    fields = {
        "title": title,
        "description": clean(payload.get("description")),
        "priority": priority,
        "status": status,
        "assigned_to_id": assigned_to_id,
        "due_date": due_date,
        "estimation": _estimation(payload),
    }
    return fields, errors


def _add_history(s: Session, task: Task, user: User, change_type: str, old: str | None, new: str | None) -> TaskHistory:
    entry = TaskHistory(
        task_id=task.id,
        changed_by_user_id=user.id,
        change_type=change_type,
        old_value=old,
        new_value=new,
        changed_at=datetime.utcnow(),
    )
    s.add(entry)
    return entry


def _check_assignee(s: Session, assigned_to_id: int | None) -> None:
    if assigned_to_id is not None and s.get(User, assigned_to_id) is None:
        raise ValueError("Assignee not found.")


def _next_position(s: Session, list_id: int) -> int:
    current = s.query(func.max(Task.position)).filter(Task.list_id == list_id).scalar()
    return (current if current is not None else -1) + 1


def _repack(tasks: list[Task]) -> None:
    for idx, t in enumerate(tasks):
        t.position = idx


def _list_for_status(project: Project, status: str) -> TaskList | None:
    return next((lst for lst in project.lists if lst.name == status), None)


def get_task_for(s: Session, user: User, task_id: int) -> Task | None:
    task = s.get(Task, task_id)
    if task is None or not can_access_project(user, task.project):
        return None
    return task


def create_task(s: Session, task_list: TaskList, payload: dict, user: User) -> Task:
    fields, errors = parse_task_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))
    _check_assignee(s, fields["assigned_to_id"])

    now = datetime.utcnow()
    task = Task(
        list_id=task_list.id,
        title=fields["title"],
        description=fields["description"],
        priority=fields["priority"],
        status=fields["status"],
        assigned_to_user_id=fields["assigned_to_id"] or user.id,
        due_date=fields["due_date"],
        estimation=fields["estimation"],
        position=_next_position(s, task_list.id),
        created_at=now,
        updated_at=now,
    )
    task.task_list = task_list
    s.add(task)
    s.flush()

    _add_history(s, task, user, "created", None, task.title)
    return task


def update_task(s: Session, task: Task, payload: dict, user: User) -> Task:
    fields, errors = parse_task_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))
    _check_assignee(s, fields["assigned_to_id"])

    old_status = task.status
    old_assignee = task.assigned_to_user_id

    task.title = fields["title"]
    task.description = fields["description"]
    task.priority = fields["priority"]
    task.assigned_to_user_id = fields["assigned_to_id"]
    task.due_date = fields["due_date"]
    task.estimation = fields["estimation"]
    task.updated_at = datetime.utcnow()

    if fields["status"] != old_status:
        _apply_status(s, task, fields["status"], user)

    if old_assignee != task.assigned_to_user_id:
        _add_history(
            s,
            task,
            user,
            "assigned",
            str(old_assignee) if old_assignee else "none",
            str(task.assigned_to_user_id) if task.assigned_to_user_id else "none",
        )
    return task


def delete_task(s: Session, task: Task, user: User) -> None:
    source = task.task_list
    record_event(
        s,
        actor=user,
        action="task.delete",
        entity_type="Task",
        entity_id=str(task.id),
        metadata={"title": task.title, "project_id": source.project_id},
    )
    source.tasks.remove(task)
    _repack(source.tasks)


def move_task(s: Session, task: Task, new_list: TaskList, new_position: int, user: User) -> Task:
    """Kanban drop: place the task at new_position in new_list; status follows the list name."""
    if new_list.project_id != task.task_list.project_id:
        raise ValueError("Cannot move a task to another project's list.")

    old_list = task.task_list
    old_list.tasks.remove(task)
    _repack(old_list.tasks)

    new_position = max(0, min(new_position, len(new_list.tasks)))
    new_list.tasks.insert(new_position, task)
    _repack(new_list.tasks)

    task.status = new_list.name
    task.updated_at = datetime.utcnow()

    if old_list.id != new_list.id:
        _add_history(s, task, user, "moved", old_list.name, new_list.name)
        logger.debug("task %s moved %s -> %s", task.id, old_list.name, new_list.name)
    return task


def _apply_status(s: Session, task: Task, status: str, user: User) -> None:
    old_status = task.status
    old_list = task.task_list
    task.status = status
    _add_history(s, task, user, "status_changed", old_status, status)

    target_list = _list_for_status(old_list.project, status)
    if target_list is not None and target_list.id != old_list.id:
        old_list.tasks.remove(task)
        _repack(old_list.tasks)
        target_list.tasks.append(task)
        _repack(target_list.tasks)
        _add_history(s, task, user, "moved", old_list.name, target_list.name)


def set_task_status(s: Session, task: Task, status: str, user: User) -> Task:
    """Change status and move the task into the project's list of the same name, if any."""
    status = clean(status) or ""
    if status not in TASK_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(TASK_STATUSES)}")
    _apply_status(s, task, status, user)
    task.updated_at = datetime.utcnow()
    return task


def add_comment(s: Session, task: Task, text: str | None, user: User) -> TaskComment:
    text = clean(text)
    if not text:
        raise ValueError("Comment cannot be empty.")
    comment = TaskComment(task_id=task.id, user_id=user.id, comment_text=text, created_at=datetime.utcnow())
    comment.user = user
    task.comments.insert(0, comment)
    s.flush()
    return comment


# ---------- Subtasks ----------


def create_subtask(s: Session, task: Task, title: str | None) -> Subtask:
    title = clean(title)
    if not title:
        raise ValueError("Title is required")
    if len(title) > 200:
        raise ValueError("Title must be at most 200 characters.")
    subtask = Subtask(task_id=task.id, title=title, is_completed=False, created_at=datetime.utcnow())
    task.subtasks.append(subtask)
    s.flush()
    return subtask


def toggle_subtask(subtask: Subtask, is_completed: bool | None = None) -> Subtask:
    subtask.is_completed = (not subtask.is_completed) if is_completed is None else bool(is_completed)
    return subtask


def delete_subtask(s: Session, subtask: Subtask) -> None:
    subtask.task.subtasks.remove(subtask)


# ---------- Queries ----------


def get_my_tasks(s: Session, user: User) -> list[Task]:
    """Tasks assigned to the user or living in projects the user created."""
    return (
        s.query(Task)
        .join(TaskList, Task.list_id == TaskList.id)
        .join(Project, TaskList.project_id == Project.id)
        .filter(or_(Task.assigned_to_user_id == user.id, Project.created_by_user_id == user.id))
        .order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
        .all()
    )


def group_by_status(tasks: list[Task]) -> dict[str, list[Task]]:
    """Kanban columns for cross-project boards (dashboards)."""
    columns: dict[str, list[Task]] = {status: [] for status in TASK_STATUSES}
    for t in tasks:
        columns.setdefault(t.status, []).append(t)
    return columns

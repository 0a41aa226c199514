from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.taskboard.models import User
from app.taskboard.modules.projects.service import get_project_for
from app.taskboard.modules.tasks.models import Task
from app.taskboard.utils import clean

from .models import Todo


def list_todos(s: Session, user: User) -> list[Todo]:
    return s.query(Todo).filter(Todo.user_id == user.id).order_by(Todo.created_at.desc(), Todo.id.desc()).all()


def list_assigned_project_tasks(s: Session, user: User) -> list[Task]:
    """Open tasks assigned to the user, soonest due first."""
    return (
        s.query(Task)
        .filter(Task.assigned_to_user_id == user.id)
        .filter(Task.status != "Completed")
        .order_by(Task.due_date.is_(None), Task.due_date.asc())
        .all()
    )


def create_todo(
    s: Session,
    user: User,
    content: str | None,
    project_id: int | None = None,
    duration: str | None = None,
) -> Todo:
    content = clean(content)
    if not content:
        raise ValueError("Content is required")
    if project_id is not None and get_project_for(s, user, project_id) is None:
        raise ValueError("Project not found")

    todo = Todo(
        user_id=user.id,
        project_id=project_id,
        content=content,
        duration=clean(duration),
        is_completed=False,
        created_at=datetime.utcnow(),
    )
    s.add(todo)
    s.flush()
    return todo


def _owned(s: Session, todo_id: int, user: User) -> Todo:
    todo = s.get(Todo, todo_id)
    if todo is None:
        raise LookupError("Todo not found")
    if todo.user_id != user.id:
        raise PermissionError("Unauthorized")
    return todo


def toggle_todo(s: Session, todo_id: int, user: User, is_completed: bool | None = None) -> Todo:
    todo = _owned(s, todo_id, user)
    todo.is_completed = (not todo.is_completed) if is_completed is None else bool(is_completed)
    return todo


def delete_todo(s: Session, todo_id: int, user: User) -> None:
    s.delete(_owned(s, todo_id, user))

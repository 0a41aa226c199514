"""
Dashboard and report aggregations.
Read-only queries; nothing here writes to the session.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from app.taskboard.constants import QUEUE_PENDING
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project, TaskList
from app.taskboard.modules.registration.models import UserRegistrationQueue
from app.taskboard.modules.tasks.models import Task, TaskHistory
from app.taskboard.modules.tasks.service import group_by_status
from app.taskboard.modules.todos.models import Todo


def admin_counts(s: Session) -> dict:
    return {
        "users": s.query(func.count(User.id)).scalar(),
        "active_users": s.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar(),
        "projects": s.query(func.count(Project.id)).scalar(),
        "active_projects": s.query(func.count(Project.id)).filter(Project.status == "Active").scalar(),
        "tasks": s.query(func.count(Task.id)).scalar(),
        "completed_tasks": s.query(func.count(Task.id)).filter(Task.status == "Completed").scalar(),
        "pending_registrations": (
            s.query(func.count(UserRegistrationQueue.queue_id))
            .filter(UserRegistrationQueue.status == QUEUE_PENDING)
            .scalar()
        ),
    }


def recent_users(s: Session, limit: int = 5) -> list[User]:
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(limit).all()


def _urgent(q, limit: int) -> list[Task]:
    return (
        q.filter(Task.status != "Completed")
        .filter(Task.due_date.isnot(None))
        .order_by(Task.due_date.asc())
        .limit(limit)
        .all()
    )


def team_ids(s: Session, manager: User) -> list[int]:
    return [row.id for row in s.query(User.id).filter(User.manager_id == manager.id).all()]


def manager_dashboard(s: Session, manager: User) -> dict:
    """Board + urgency figures for the manager's direct reports."""
    member_ids = team_ids(s, manager)
    team_tasks = s.query(Task).filter(Task.assigned_to_user_id.in_(member_ids))

    tasks = team_tasks.order_by(Task.due_date.is_(None), Task.due_date.asc()).all()
    completion_rows = (
        s.query(TaskHistory)
        .join(Task, TaskHistory.task_id == Task.id)
        .filter(Task.assigned_to_user_id.in_(member_ids))
        .filter(TaskHistory.change_type.in_(("status_changed", "moved")))
        .filter(TaskHistory.new_value == "Completed")
        .order_by(TaskHistory.changed_at.desc(), TaskHistory.id.desc())
        .limit(20)
        .all()
    )
    recently_completed: list[TaskHistory] = []
    seen: set[int] = set()
    for row in completion_rows:
        if row.task_id in seen:
            continue
        seen.add(row.task_id)
        recently_completed.append(row)
        if len(recently_completed) == 5:
            break
    return {
        "team_size": len(member_ids),
        "task_count": len(tasks),
        "columns": group_by_status(tasks),
        "urgent": _urgent(team_tasks, 5),
        "recently_completed": recently_completed,
    }


def team_members(s: Session, manager: User) -> list[dict]:
    reports = s.query(User).filter(User.manager_id == manager.id).order_by(User.username.asc()).all()
    rows = []
    for member in reports:
        total = s.query(func.count(Task.id)).filter(Task.assigned_to_user_id == member.id).scalar()
        completed = (
            s.query(func.count(Task.id))
            .filter(Task.assigned_to_user_id == member.id)
            .filter(Task.status == "Completed")
            .scalar()
        )
        rows.append({"user": member, "total_tasks": total, "completed_tasks": completed})
    return rows


def user_dashboard(s: Session, user: User) -> dict:
    mine = s.query(Task).filter(Task.assigned_to_user_id == user.id)
    tasks = mine.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc()).all()
    open_todos = (
        s.query(func.count(Todo.id))
        .filter(Todo.user_id == user.id)
        .filter(Todo.is_completed.is_(False))
        .scalar()
    )
    return {
        "task_count": len(tasks),
        "columns": group_by_status(tasks),
        "urgent": _urgent(mine, 4),
        "open_todos": open_todos,
    }


def user_activity(s: Session, target: User) -> dict:
    """Owned projects, latest assigned tasks, manager and reports for a user detail page."""
    projects = (
        s.query(Project)
        .filter(Project.created_by_user_id == target.id)
        .order_by(Project.created_at.desc())
        .all()
    )
    tasks = (
        s.query(Task)
        .filter(Task.assigned_to_user_id == target.id)
        .order_by(Task.created_at.desc(), Task.id.desc())
        .limit(50)
        .all()
    )
    return {"projects": projects, "tasks": tasks, "manager": target.manager, "reports": list(target.reports)}


def _distribution(s: Session, column) -> list[dict]:
    rows = s.query(column, func.count(Task.id)).group_by(column).order_by(column).all()
    return [{"name": name, "value": count} for name, count in rows]


def report_stats(s: Session, now: datetime | None = None) -> dict:
    """Aggregates behind the reports page charts."""
    now = now or datetime.utcnow()

    project_rows = (
        s.query(Project.name, func.count(Task.id))
        .outerjoin(TaskList, TaskList.project_id == Project.id)
        .outerjoin(Task, Task.list_id == TaskList.id)
        .group_by(Project.id, Project.name)
        .order_by(func.count(Task.id).desc(), Project.id.asc())
        .limit(5)
        .all()
    )
    workload_rows = (
        s.query(User.username, func.count(Task.id))
        .join(Task, Task.assigned_to_user_id == User.id)
        .group_by(User.id, User.username)
        .order_by(func.count(Task.id).desc(), User.id.asc())
        .limit(5)
        .all()
    )

    # Last seven days keyed by short weekday, oldest first.
    days = [(now - timedelta(days=offset)).date() for offset in range(6, -1, -1)]
    activity = {d: {"name": d.strftime("%a"), "added": 0, "completed": 0} for d in days}
    since = datetime.combine(days[0], datetime.min.time())
    history = (
        s.query(TaskHistory.task_id, TaskHistory.change_type, TaskHistory.changed_at)
        .filter(TaskHistory.changed_at >= since)
        .filter(
            or_(
                TaskHistory.change_type == "created",
                and_(TaskHistory.change_type.in_(("status_changed", "moved")), TaskHistory.new_value == "Completed"),
            )
        )
        .all()
    )
    # A status change to Completed also writes a "moved" row; count each task once per day.
    completed_seen: set[tuple[int, object]] = set()
    for task_id, change_type, changed_at in history:
        day = changed_at.date()
        bucket = activity.get(day)
        if bucket is None:
            continue
        if change_type == "created":
            bucket["added"] += 1
        elif (task_id, day) not in completed_seen:
            completed_seen.add((task_id, day))
            bucket["completed"] += 1

    return {
        "statusDistribution": _distribution(s, Task.status),
        "priorityDistribution": _distribution(s, Task.priority),
        "projectStats": [{"name": name, "tasks": count} for name, count in project_rows],
        "userWorkload": [{"name": name, "tasks": count} for name, count in workload_rows],
        "activityData": list(activity.values()),
    }

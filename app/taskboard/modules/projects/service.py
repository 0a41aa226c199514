"""
Projects service layer.
Project CRUD, visibility rules and membership.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.taskboard.audit import record_event
from app.taskboard.constants import DEFAULT_TASK_LISTS
from app.taskboard.models import User
from app.taskboard.rbac import is_admin, is_privileged
from app.taskboard.utils import clean

from .models import Project, ProjectMember, TaskList


def validate_project_payload(payload: dict) -> list[str]:
    errors = []
    name = clean(payload.get("name")) or ""
    if not name:
        errors.append("Project name is required.")
    elif len(name) > 100:
        errors.append("Project name must be at most 100 characters.")
    return errors


def _visibility_filter(user: User):
    member_project_ids = select(ProjectMember.project_id).where(ProjectMember.user_id == user.id)
    return or_(Project.created_by_user_id == user.id, Project.id.in_(member_project_ids))


def can_access_project(user: User | None, project: Project) -> bool:
    if not user:
        return False
    if is_privileged(user) or project.created_by_user_id == user.id:
        return True
    return any(m.user_id == user.id for m in project.members)


def can_manage_project(user: User | None, project: Project) -> bool:
    """Owner or admin may delete/complete a project and manage its members."""
    return bool(user and (is_admin(user) or project.created_by_user_id == user.id))


def list_projects_for(s: Session, user: User) -> list[Project]:
    q = s.query(Project)
    if not is_privileged(user):
        q = q.filter(_visibility_filter(user))
    return q.order_by(Project.created_at.desc(), Project.id.desc()).all()


def get_project_for(s: Session, user: User, project_id: int) -> Project | None:
    project = s.get(Project, project_id)
    if project is None or not can_access_project(user, project):
        return None
    return project


def create_project(s: Session, payload: dict, user: User) -> Project:
    """Create a project with its default Pending / In Progress / Completed lists."""
    errors = validate_project_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))

    now = datetime.utcnow()
    project = Project(
        name=clean(payload.get("name")),
        description=clean(payload.get("description")),
        status="Active",
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    for position, list_name in enumerate(DEFAULT_TASK_LISTS):
        project.lists.append(TaskList(name=list_name, position=position))
    s.add(project)
    s.flush()

    record_event(
        s,
        actor=user,
        action="project.create",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"name": project.name},
    )
    return project


def update_project(s: Session, project: Project, payload: dict, user: User) -> Project:
    errors = validate_project_payload(payload)
    if errors:
        raise ValueError(" ".join(errors))

    changes = {}
    new_name = clean(payload.get("name"))
    if new_name != project.name:
        changes["name"] = {"old": project.name, "new": new_name}
        project.name = new_name

    new_description = clean(payload.get("description"))
    if new_description != project.description:
        changes["description"] = {"old": project.description, "new": new_description}
        project.description = new_description

    project.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="project.edit",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"changes": changes},
    )
    return project


def complete_project(s: Session, project: Project, user: User) -> Project:
    if not can_manage_project(user, project):
        raise PermissionError("Only the project owner or an admin can complete this project.")
    project.status = "Completed"
    project.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="project.complete", entity_type="Project", entity_id=str(project.id))
    return project


def delete_project(s: Session, project: Project, user: User) -> None:
    if not can_manage_project(user, project):
        raise PermissionError("Only the project owner or an admin can delete this project.")
    record_event(
        s,
        actor=user,
        action="project.delete",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"name": project.name},
    )
    s.delete(project)


# ---------- Membership ----------


def list_members(project: Project) -> list[dict]:
    return [
        {
            "id": m.user.id,
            "name": m.user.username,
            "email": m.user.email,
            "role": m.role,
            "joined_at": m.joined_at.isoformat(),
        }
        for m in sorted(project.members, key=lambda m: m.joined_at)
    ]


def add_member(s: Session, project: Project, email: str, user: User) -> ProjectMember:
    email = (clean(email) or "").lower()
    if not email:
        raise ValueError("Email is required")
    target = s.query(User).filter(func.lower(User.email) == email).one_or_none()
    if target is None:
        raise ValueError("User not found with this email")
    if any(m.user_id == target.id for m in project.members):
        raise ValueError("User is already a member")

    member = ProjectMember(project_id=project.id, user_id=target.id, role="Editor", joined_at=datetime.utcnow())
    member.user = target
    project.members.append(member)
    s.flush()

    record_event(
        s,
        actor=user,
        action="project.member_add",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"user_id": target.id, "email": target.email},
    )
    return member


def remove_member(s: Session, project: Project, user_id: int, user: User) -> None:
    member = next((m for m in project.members if m.user_id == user_id), None)
    if member is None:
        raise ValueError("User is not a member of this project")
    project.members.remove(member)
    record_event(
        s,
        actor=user,
        action="project.member_remove",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"user_id": user_id},
    )


def assignable_users(s: Session) -> list[User]:
    """Any active user can be assigned, not only project members."""
    return s.query(User).filter(User.is_active.is_(True)).order_by(User.username.asc()).all()


def board_payload(s: Session, project: Project) -> dict:
    """JSON shape consumed by the drag-and-drop board."""
    return {
        "project": {"id": project.id, "name": project.name, "status": project.status},
        "members": [
            {"user_id": u.id, "user": {"name": u.username, "username": u.username, "email": u.email}}
            for u in assignable_users(s)
        ],
        "task_lists": [
            {
                "id": lst.id,
                "list_name": lst.name,
                "tasks": [
                    {
                        "id": t.id,
                        "title": t.title,
                        "description": t.description,
                        "priority": t.priority,
                        "status": t.status,
                        "position": t.position,
                        "due_date": t.due_date.isoformat() if t.due_date else None,
                        "assigned_to": {"username": t.assignee.username} if t.assignee else None,
                    }
                    for t in lst.tasks
                ],
            }
            for lst in project.lists
        ],
    }

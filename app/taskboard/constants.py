"""
Central constants for the TaskBoard application.
"""
from __future__ import annotations

# Role keys, most privileged first.
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_USER = "user"
ROLE_PRECEDENCE = (ROLE_ADMIN, ROLE_MANAGER, ROLE_USER)

ROLE_NAMES = {
    ROLE_ADMIN: "Admin",
    ROLE_MANAGER: "Manager",
    ROLE_USER: "User",
}

# Roles an applicant may request on the public registration form.
SELF_SERVICE_ROLES = ("USER", "MANAGER")

PERMISSIONS = {
    "dashboard.view": "Dashboard: view",
    "projects.view": "Projects: view own",
    "projects.view_all": "Projects: view all",
    "projects.create": "Projects: create",
    "projects.edit": "Projects: edit",
    "tasks.edit": "Tasks: create/edit",
    "todos.manage": "Todos: manage own",
    "reports.view": "Reports: view",
    "team.view": "Team: view direct reports",
    "users.manage": "Users: manage accounts",
    "approvals.manage": "Approvals: review registrations",
    "admin.view": "Admin: view dashboard",
}

_BASE_PERMISSIONS = (
    "dashboard.view",
    "projects.view",
    "projects.create",
    "projects.edit",
    "tasks.edit",
    "todos.manage",
    "reports.view",
)

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    ROLE_USER: _BASE_PERMISSIONS,
    ROLE_MANAGER: _BASE_PERMISSIONS + ("projects.view_all", "team.view"),
    ROLE_ADMIN: tuple(PERMISSIONS.keys()),
}

TASK_PRIORITIES = ("Low", "Medium", "High", "Critical")
TASK_STATUSES = ("Pending", "In Progress", "Completed", "Blocked")
DEFAULT_TASK_LISTS = ("Pending", "In Progress", "Completed")

PROJECT_STATUSES = ("Active", "Completed")

QUEUE_PENDING = "PENDING"
QUEUE_APPROVED = "APPROVED"
QUEUE_REJECTED = "REJECTED"
QUEUE_STATUSES = (QUEUE_PENDING, QUEUE_APPROVED, QUEUE_REJECTED)

# Shown on the applicant's queue page; not derived from data.
QUEUE_AVG_WAIT = "18 hours"
QUEUE_ESTIMATED_APPROVAL = "24-48 Hours"

THEMES = ("light", "dark", "system")

"""initial schema

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-09-28 10:12:41.204117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create auth, registration, project, task and todo tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    # ---------- Auth / RBAC ----------
    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(100), nullable=False, unique=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("registration_status", sa.String(32), nullable=False, server_default="ACTIVE"),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(64), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(
                "permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
            ),
        )

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
            ),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("job_title", sa.String(100), nullable=True),
            sa.Column("department", sa.String(100), nullable=True),
            sa.Column("timezone", sa.String(50), nullable=True),
            sa.Column("team_name", sa.String(100), nullable=True),
            sa.Column("designation", sa.String(100), nullable=True),
            sa.Column("skills", sa.String(500), nullable=True),
            sa.Column("work_hours", sa.String(100), nullable=True),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("theme", sa.String(16), nullable=False, server_default="system"),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )

    # ---------- Registration queue ----------
    if "user_registration_queue" not in existing_tables:
        op.create_table(
            "user_registration_queue",
            sa.Column("queue_id", sa.String(32), primary_key=True),
            sa.Column("full_name", sa.String(100), nullable=True),
            sa.Column("username", sa.String(50), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(16), nullable=False, server_default="USER"),
            sa.Column("department", sa.String(100), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
            sa.Column("submitted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column(
                "reviewed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
        )
        op.create_index("idx_registration_queue_status", "user_registration_queue", ["status"])
        op.create_index("idx_registration_queue_submitted_at", "user_registration_queue", ["submitted_at"])
        op.create_index("idx_registration_queue_email", "user_registration_queue", ["email"])

    if "admin_approval_logs" not in existing_tables:
        op.create_table(
            "admin_approval_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("admin_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column(
                "queue_id",
                sa.String(32),
                sa.ForeignKey("user_registration_queue.queue_id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("action", sa.String(16), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_admin_approval_logs_queue", "admin_approval_logs", ["queue_id"])

    # ---------- Projects ----------
    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="Active"),
            sa.Column(
                "created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_projects_created_by", "projects", ["created_by_user_id"])
        op.create_index("idx_projects_status", "projects", ["status"])

    if "project_members" not in existing_tables:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="Editor"),
            sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        )

    if "task_lists" not in existing_tables:
        op.create_table(
            "task_lists",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(64), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_task_lists_project", "task_lists", ["project_id"])

    # ---------- Tasks ----------
    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("list_id", sa.Integer(), sa.ForeignKey("task_lists.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "assigned_to_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(16), nullable=False, server_default="Medium"),
            sa.Column("status", sa.String(32), nullable=False, server_default="Pending"),
            sa.Column("due_date", sa.DateTime(), nullable=True),
            sa.Column("estimation", sa.String(64), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_tasks_list_position", "tasks", ["list_id", "position"])
        op.create_index("idx_tasks_assigned_to", "tasks", ["assigned_to_user_id"])
        op.create_index("idx_tasks_status", "tasks", ["status"])
        op.create_index("idx_tasks_due_date", "tasks", ["due_date"])

    if "subtasks" not in existing_tables:
        op.create_table(
            "subtasks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_subtasks_task", "subtasks", ["task_id"])

    if "task_comments" not in existing_tables:
        op.create_table(
            "task_comments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("comment_text", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_task_comments_task", "task_comments", ["task_id"])

    if "task_history" not in existing_tables:
        op.create_table(
            "task_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "changed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("change_type", sa.String(32), nullable=False),
            sa.Column("old_value", sa.String(255), nullable=True),
            sa.Column("new_value", sa.String(255), nullable=True),
            sa.Column("changed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_task_history_task", "task_history", ["task_id"])
        op.create_index("idx_task_history_changed_at", "task_history", ["changed_at"])

    # ---------- Todos ----------
    if "todos" not in existing_tables:
        op.create_table(
            "todos",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("duration", sa.String(64), nullable=True),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_todos_user", "todos", ["user_id"])


def downgrade() -> None:
    """Drop all tables (reverse dependency order)."""
    for table in (
        "todos",
        "task_history",
        "task_comments",
        "subtasks",
        "tasks",
        "task_lists",
        "project_members",
        "projects",
        "admin_approval_logs",
        "user_registration_queue",
        "audit_events",
        "profiles",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.taskboard.models import Base, User

if TYPE_CHECKING:
    from app.taskboard.modules.projects.models import Project, TaskList


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_list_position", "list_id", "position"),
        Index("idx_tasks_assigned_to", "assigned_to_user_id"),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_due_date", "due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    list_id: Mapped[int] = mapped_column(ForeignKey("task_lists.id", ondelete="CASCADE"), nullable=False)
    assigned_to_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")  # Low, Medium, High, Critical
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Pending")  # Pending, In Progress, Completed, Blocked
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    estimation: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "3 hours"
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    task_list: Mapped["TaskList"] = relationship("TaskList", back_populates="tasks")
    assignee: Mapped[User | None] = relationship("User", foreign_keys=[assigned_to_user_id], lazy="selectin")
    subtasks: Mapped[list["Subtask"]] = relationship(
        "Subtask",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Subtask.created_at",
    )
    comments: Mapped[list["TaskComment"]] = relationship(
        "TaskComment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskComment.created_at.desc()",
    )
    history: Mapped[list["TaskHistory"]] = relationship(
        "TaskHistory",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskHistory.id.desc()",
    )

    @property
    def project(self) -> "Project":
        return self.task_list.project


class Subtask(Base):
    __tablename__ = "subtasks"
    __table_args__ = (Index("idx_subtasks_task", "task_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    task: Mapped[Task] = relationship("Task", back_populates="subtasks")


class TaskComment(Base):
    __tablename__ = "task_comments"
    __table_args__ = (Index("idx_task_comments_task", "task_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    task: Mapped[Task] = relationship("Task", back_populates="comments")
    user: Mapped[User] = relationship("User", lazy="selectin")


class TaskHistory(Base):
    """
    Append-only record of a task field change (old/new stored as strings).
    change_type: created, status_changed, assigned, moved.
    """

    __tablename__ = "task_history"
    __table_args__ = (
        Index("idx_task_history_task", "task_id"),
        Index("idx_task_history_changed_at", "changed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    changed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    change_type: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    new_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    task: Mapped[Task] = relationship("Task", back_populates="history")
    changed_by: Mapped[User | None] = relationship("User", lazy="selectin")

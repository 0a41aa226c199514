from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.taskboard.models import Base, User

if TYPE_CHECKING:
    from app.taskboard.modules.tasks.models import Task


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_created_by", "created_by_user_id"),
        Index("idx_projects_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Active")  # Active, Completed

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    owner: Mapped[User] = relationship("User", foreign_keys=[created_by_user_id], lazy="selectin")
    lists: Mapped[list["TaskList"]] = relationship(
        "TaskList",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="TaskList.position",
        lazy="selectin",
    )
    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def task_count(self) -> int:
        return sum(len(lst.tasks) for lst in self.lists)


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="Editor")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    project: Mapped[Project] = relationship("Project", back_populates="members")
    user: Mapped[User] = relationship("User", lazy="selectin")


class TaskList(Base):
    __tablename__ = "task_lists"
    __table_args__ = (Index("idx_task_lists_project", "project_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)  # doubles as the task status for the column
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    project: Mapped[Project] = relationship("Project", back_populates="lists")
    tasks: Mapped[list["Task"]] = relationship(
        "Task",
        back_populates="task_list",
        cascade="all, delete-orphan",
        order_by="Task.position",
        lazy="selectin",
    )

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.taskboard.models import Base


def _new_queue_id() -> str:
    return uuid.uuid4().hex


class UserRegistrationQueue(Base):
    __tablename__ = "user_registration_queue"
    __table_args__ = (
        Index("idx_registration_queue_status", "status"),
        Index("idx_registration_queue_submitted_at", "submitted_at"),
        Index("idx_registration_queue_email", "email"),
    )

    # Opaque id handed to the applicant for the queue-status page.
    queue_id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_queue_id)

    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="USER")  # requested role
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    logs: Mapped[list["AdminApprovalLog"]] = relationship(
        "AdminApprovalLog",
        back_populates="queue_entry",
        cascade="all, delete-orphan",
        order_by="AdminApprovalLog.id",
    )


class AdminApprovalLog(Base):
    __tablename__ = "admin_approval_logs"
    __table_args__ = (Index("idx_admin_approval_logs_queue", "queue_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    queue_id: Mapped[str] = mapped_column(
        ForeignKey("user_registration_queue.queue_id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # APPROVED, REJECTED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    queue_entry: Mapped[UserRegistrationQueue] = relationship("UserRegistrationQueue", back_populates="logs")

"""Goal ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from goalpath.db.base import Base


class Goal(Base):
    __tablename__ = "goals"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed', 'archived', 'paused')", name="ck_goals_status"),
        Index("ix_goals_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=False)
    status = Column(String(length=20), nullable=False, server_default=sa_text("'active'"))
    # Display snapshot only; progress is always recomputed from key results.
    progress_percentage = Column(Numeric(5, 2), nullable=False, server_default=sa_text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="goals")
    yearly_objectives = relationship(
        "YearlyObjective",
        back_populates="goal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="YearlyObjective.target_year",
    )

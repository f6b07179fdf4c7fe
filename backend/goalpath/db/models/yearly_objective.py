"""Yearly objective ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from goalpath.db.base import Base


class YearlyObjective(Base):
    __tablename__ = "yearly_objectives"
    __table_args__ = (
        UniqueConstraint("goal_id", "target_year", name="uq_yearly_objectives_goal_year"),
        Index("ix_yearly_objectives_goal_id", "goal_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    goal_id = Column(UUID(as_uuid=True), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False)
    target_year = Column(Integer, nullable=False)
    objective = Column(Text, nullable=False)
    sort_order = Column(Integer, nullable=False, server_default=sa_text("0"))
    progress_percentage = Column(Numeric(5, 2), nullable=False, server_default=sa_text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    goal = relationship("Goal", back_populates="yearly_objectives")
    quarterly_objectives = relationship(
        "QuarterlyObjective",
        back_populates="yearly_objective",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuarterlyObjective.target_quarter",
    )
    key_results = relationship(
        "KeyResult",
        back_populates="yearly_objective",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="KeyResult.sort_order",
    )

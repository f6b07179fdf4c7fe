"""Quarterly objective ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
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


class QuarterlyObjective(Base):
    __tablename__ = "quarterly_objectives"
    __table_args__ = (
        UniqueConstraint("yearly_objective_id", "target_quarter", name="uq_quarterly_objectives_yearly_quarter"),
        CheckConstraint("target_quarter BETWEEN 1 AND 4", name="ck_quarterly_objectives_quarter_range"),
        Index("ix_quarterly_objectives_yearly_objective_id", "yearly_objective_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    yearly_objective_id = Column(
        UUID(as_uuid=True),
        ForeignKey("yearly_objectives.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_year = Column(Integer, nullable=False)
    target_quarter = Column(Integer, nullable=False)
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

    yearly_objective = relationship("YearlyObjective", back_populates="quarterly_objectives")
    key_results = relationship(
        "KeyResult",
        back_populates="quarterly_objective",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="KeyResult.sort_order",
    )

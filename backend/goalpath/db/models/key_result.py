"""Key result ORM model."""
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
    String,
    Text,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from goalpath.db.base import Base


class KeyResult(Base):
    __tablename__ = "key_results"
    __table_args__ = (
        # Exactly one parent: a yearly objective or a quarterly objective.
        CheckConstraint(
            "(yearly_objective_id IS NOT NULL AND quarterly_objective_id IS NULL) OR "
            "(yearly_objective_id IS NULL AND quarterly_objective_id IS NOT NULL)",
            name="ck_key_results_single_parent",
        ),
        CheckConstraint("target_value > 0", name="ck_key_results_target_positive"),
        Index("ix_key_results_yearly_objective_id", "yearly_objective_id"),
        Index("ix_key_results_quarterly_objective_id", "quarterly_objective_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    yearly_objective_id = Column(
        UUID(as_uuid=True),
        ForeignKey("yearly_objectives.id", ondelete="CASCADE"),
        nullable=True,
    )
    quarterly_objective_id = Column(
        UUID(as_uuid=True),
        ForeignKey("quarterly_objectives.id", ondelete="CASCADE"),
        nullable=True,
    )
    description = Column(Text, nullable=False)
    target_value = Column(Numeric(10, 2), nullable=False)
    current_value = Column(Numeric(10, 2), nullable=False, server_default=sa_text("0"))
    unit = Column(String(length=50), nullable=True)
    achievement_rate = Column(Numeric(5, 2), nullable=False, server_default=sa_text("0"))
    sort_order = Column(Integer, nullable=False, server_default=sa_text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    yearly_objective = relationship("YearlyObjective", back_populates="key_results")
    quarterly_objective = relationship("QuarterlyObjective", back_populates="key_results")

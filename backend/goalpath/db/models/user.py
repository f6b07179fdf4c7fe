"""User ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from goalpath.db.base import Base


class User(Base):
    """Goal owner; the row is created on the first goal intake for an id."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

"""Database utilities and models."""

from goalpath.db.base import Base
from goalpath.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]

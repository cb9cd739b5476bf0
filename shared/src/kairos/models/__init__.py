"""SQLAlchemy ORM models for Kairos."""

from kairos.models.base import Base
from kairos.models.birth_profile import BirthProfile

__all__ = ["Base", "BirthProfile"]

"""Stored birth data and the natal positions derived from it."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from kairos.models.base import Base


class BirthProfile(Base):
    __tablename__ = "birth_profiles"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    born_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    birth_place_latitude: Mapped[float | None] = mapped_column(Float)
    birth_place_longitude: Mapped[float | None] = mapped_column(Float)
    birth_timezone: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'UTC'"))
    # {"positions": [{"body": "sun", "longitude": 123.4, "speed": 0.98}, ...]}
    natal_positions: Mapped[dict | None] = mapped_column(JSONB)
    refreshed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleetdash.db import Base


class InsightCache(Base):
    """Model answers for the insights endpoint, keyed by a hash of the request payload."""

    __tablename__ = "insight_cache"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    module: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    locale: Mapped[str] = mapped_column(String(16), default="en", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    insights_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

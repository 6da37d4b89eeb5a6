"""UserInteraction model — logs every served generation for analytics."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType


class UserInteraction(Base):
    """Append-only log of learner interactions with generated content."""

    __tablename__ = "user_interactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phase_id: Mapped[str] = mapped_column(String(64), nullable=False)
    interaction_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    interaction_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    from_cache: Mapped[bool] = mapped_column(Boolean, nullable=False, insert_default=False)
    time_spent_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

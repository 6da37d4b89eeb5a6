"""ContentCache model — persistent cache of generated learning content."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType


class ContentCache(Base):
    """One reusable generation result per (user, phase, interaction kind, fingerprint)."""

    __tablename__ = "content_cache"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "phase_id", "interaction_kind", "context_hash",
            name="uq_content_cache_context",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phase_id: Mapped[str] = mapped_column(String(64), nullable=False)
    interaction_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    context_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, insert_default=1)
    success_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cache_version: Mapped[str] = mapped_column(String(32), nullable=False)
    generation_metadata: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
    )

"""SubjectDraft model — durable checkpoint of the subject creation wizard."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"


class SubjectDraft(Base):
    """Partial output of a multi-step subject generation; never deleted."""

    __tablename__ = "subject_drafts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, insert_default=STATUS_DRAFT, index=True,
    )
    topic: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    audience: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    goals: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    syllabus: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    subject_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    system_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

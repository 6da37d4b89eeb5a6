"""ContentTemplate model — admin overrides for built-in prompt templates."""

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ContentTemplate(Base):
    __tablename__ = "content_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    template_content: Mapped[str] = mapped_column(Text, nullable=False)
    # Capped by the built-in budget of the same key
    max_chars: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, insert_default=True)

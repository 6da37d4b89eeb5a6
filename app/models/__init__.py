"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.content_cache import ContentCache
from app.models.content_template import ContentTemplate
from app.models.subject_draft import SubjectDraft
from app.models.user_interaction import UserInteraction

__all__ = ["Base", "ContentCache", "ContentTemplate", "SubjectDraft", "UserInteraction"]

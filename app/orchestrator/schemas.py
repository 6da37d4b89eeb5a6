"""Pydantic models for API input/output — shared across the cache layer and the wizard.

Split into: generation context, cache entries, draft checkpoints, and API responses.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Response models are emitted in the frontend's camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═══════════════ GENERATION CONTEXT ═══════════════

class UserLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class KeyConcept(BaseModel):
    title: str
    description: str = ""


class GenerationContext(BaseModel):
    """Closed context of a generation request.

    ``session_id`` and ``requested_at`` are volatile and never reach the fingerprint.
    """

    model_config = ConfigDict(extra="forbid")

    objective: str = ""
    key_concepts: list[KeyConcept] = Field(default_factory=list)
    user_input: str | None = None
    user_level: UserLevel = UserLevel.BEGINNER
    recent_interaction_ids: list[str] = Field(default_factory=list, max_length=50)
    extra: dict[str, Any] = Field(default_factory=dict)

    # Volatile
    session_id: str | None = None
    requested_at: datetime | None = None


class GenerationRequest(BaseModel):
    user_id: str = Field(min_length=1)
    phase_id: str = Field(min_length=1)
    interaction_kind: str = Field(min_length=1)
    context: GenerationContext = Field(default_factory=GenerationContext)


class GenerationResponse(_CamelModel):
    content: str
    from_cache: bool
    cache_id: uuid.UUID | None = None
    usage_count: int | None = None
    is_fallback: bool = False


# ═══════════════ CACHE ENTRIES ═══════════════

class CacheEntryCreate(BaseModel):
    user_id: str
    phase_id: str
    interaction_kind: str
    context_hash: str
    content: str
    expires_at: datetime
    generation_metadata: dict[str, Any] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    phase_id: str
    interaction_kind: str
    context_hash: str
    content: str
    usage_count: int
    success_score: float | None = None
    cache_version: str
    generation_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class RatingRequest(BaseModel):
    score: float = Field(ge=0, le=5)


# ═══════════════ WIZARD / DRAFT CHECKPOINTS ═══════════════

WizardAction = Literal["analyze", "generate_syllabus", "generate_metadata", "generate_prompt"]


class TopicInput(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    description: str = ""
    audience: str = ""
    goals: list[str] = Field(default_factory=list)


class DraftStep(BaseModel):
    """Output of one wizard step; unset fields leave the draft untouched."""

    syllabus: dict[str, Any] | None = None
    subject_metadata: dict[str, Any] | None = None
    system_prompt: str | None = None

    def produced_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Draft(_CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    status: Literal["draft", "active"]
    topic: str
    description: str = ""
    audience: str = ""
    goals: list[str] = Field(default_factory=list)
    syllabus: dict[str, Any] | None = None
    subject_metadata: dict[str, Any] | None = None
    system_prompt: str | None = None
    created_at: datetime
    last_saved_at: datetime
    finalized_at: datetime | None = None

    def missing_steps(self) -> list[str]:
        missing = []
        if not self.syllabus:
            missing.append("syllabus")
        if not self.subject_metadata:
            missing.append("metadata")
        if not self.system_prompt:
            missing.append("prompt")
        return missing


class WizardStepRequest(_CamelModel):
    draft_id: uuid.UUID | None = None
    topic: TopicInput | None = None


class WizardStepResult(_CamelModel):
    action: str
    artifact: dict[str, Any]
    draft_id: uuid.UUID | None = None
    checkpointed: bool = False
    retries: int = 0


class RetryNotice(BaseModel):
    """Sent before each retry so long-running callers can inform the user."""

    attempt: int
    max_attempts: int
    delay: float
    error: str


# ═══════════════ PROGRESS ═══════════════

class ProgressInfo(_CamelModel):
    progress: int
    explored_phases: list[str] = Field(default_factory=list)
    total_phases: int

"""Template selector — phase-aware, length-bounded prompt templates.

Each phase id carries a difficulty/focus profile. Unknown phase ids use the
introductory beginner profile. Every template documents its character budget
and ``render`` never exceeds it.

Template budgets (characters, directives included):
  phase_introduction   1200
  phase_article        2400
  submission_response  1600
  quiz_feedback        1400
  phase_completion     1200
  concept_explanation  1600
"""

import logging
import re
from typing import Literal

from cachetools import TTLCache
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.content_template import ContentTemplate

logger = logging.getLogger(__name__)

Difficulty = Literal["beginner", "intermediate", "advanced"]
ContentType = Literal["conceptual", "practical", "mixed"]


class PhaseProfile(BaseModel):
    id: str
    title_short: str
    difficulty: Difficulty
    focus: str
    key_terms: list[str] = Field(default_factory=list)
    content_type: ContentType


DEFAULT_PHASE_PROFILES: dict[str, PhaseProfile] = {
    "1": PhaseProfile(
        id="1", title_short="GenAI Fundamentals", difficulty="beginner", focus="concepts",
        key_terms=["GenAI", "LLMs", "model basics", "AI interaction"], content_type="conceptual",
    ),
    "2": PhaseProfile(
        id="2", title_short="Project Ideation", difficulty="beginner", focus="design",
        key_terms=["project planning", "AI research", "brainstorming"], content_type="practical",
    ),
    "3": PhaseProfile(
        id="3", title_short="Building a Prototype", difficulty="intermediate", focus="hands-on",
        key_terms=["AI studio", "coding", "prototyping"], content_type="practical",
    ),
    "4": PhaseProfile(
        id="4", title_short="Advanced Features", difficulty="intermediate", focus="advanced",
        key_terms=["RAG", "multi-agent", "data integration"], content_type="mixed",
    ),
    "5": PhaseProfile(
        id="5", title_short="Deployment & Ethics", difficulty="advanced", focus="deployment",
        key_terms=["deployment", "responsible AI", "enterprise"], content_type="mixed",
    ),
}

INTRODUCTORY_PROFILE = PhaseProfile(
    id="intro", title_short="Getting Started", difficulty="beginner", focus="concepts",
    key_terms=["fundamentals"], content_type="conceptual",
)

CONTENT_TYPE_DIRECTIVES: dict[str, str] = {
    "conceptual": (
        "Focus on clear explanations, real-world analogies and conceptual understanding. "
        "Avoid technical jargon and code."
    ),
    "practical": (
        "Provide actionable steps and practical examples the learner can apply right away."
    ),
    "mixed": "Balance conceptual explanations with practical applications and examples.",
}

MARKUP_DIRECTIVE = (
    "Respond with HTML only, using these classes: llm-container, llm-title, llm-subtitle, "
    "llm-text, llm-code, llm-highlight, llm-task, llm-button. "
    "Clickable elements need a data-interaction-id attribute."
)

TEMPLATE_KEYS: dict[str, str] = {
    "introduction": "phase_introduction",
    "content": "phase_article",
    "submit": "submission_response",
    "quiz": "quiz_feedback",
    "completion": "phase_completion",
    "phase_complete": "phase_completion",
}
DEFAULT_TEMPLATE_KEY = "concept_explanation"

TEMPLATE_BUDGETS: dict[str, int] = {
    "phase_introduction": 1200,
    "phase_article": 2400,
    "submission_response": 1600,
    "quiz_feedback": 1400,
    "phase_completion": 1200,
    "concept_explanation": 1600,
}

# Per-placeholder caps keep any single user-provided field from eating the budget.
FIELD_LIMITS: dict[str, int] = {
    "objective": 300,
    "key_concepts": 700,
    "user_input": 500,
}
DEFAULT_FIELD_LIMIT = 200

_BODIES: dict[str, dict[str, str]] = {
    "phase_introduction": {
        "beginner": (
            "Write a short, welcoming introduction to the learning phase \"{phase_title}\" "
            "for {difficulty} learners. Explain in plain words what they will learn and why "
            "it matters.\nObjective: {objective}\nKey concepts: {key_concepts}"
        ),
        "default": (
            "Write an introduction to the learning phase \"{phase_title}\" for {difficulty} "
            "learners focused on {focus}. Outline the objective, the key concepts and the "
            "hands-on work ahead.\nObjective: {objective}\nKey concepts: {key_concepts}"
        ),
    },
    "phase_article": {
        "default": (
            "Write a comprehensive, blog-style article for the learning phase \"{phase_title}\" "
            "aimed at {difficulty} learners with a focus on {focus}.\n"
            "Objective: {objective}\nCover each key concept in its own section:\n{key_concepts}\n"
            "Start with an engaging introduction, give each concept a subheading with "
            "explanations and examples, and finish with a summary of key takeaways."
        ),
    },
    "submission_response": {
        "default": (
            "A {difficulty} learner in \"{phase_title}\" submitted the following work:\n"
            "{user_input}\nGive encouraging, specific feedback tied to the objective "
            "({objective}) and suggest one concrete next step."
        ),
    },
    "quiz_feedback": {
        "default": (
            "A {difficulty} learner in \"{phase_title}\" answered a quiz question:\n"
            "{user_input}\nExplain whether the answer is right, why, and which key concept "
            "({key_terms}) to review."
        ),
    },
    "phase_completion": {
        "default": (
            "Congratulate a {difficulty} learner on completing \"{phase_title}\". Summarize "
            "what they achieved against the objective ({objective}) and preview what comes next."
        ),
    },
    "concept_explanation": {
        "beginner": (
            "Explain the following to a beginner in \"{phase_title}\" using simple language "
            "and an everyday analogy:\n{user_input}\nRelated concepts: {key_terms}"
        ),
        "default": (
            "Explain the following to a {difficulty} learner in \"{phase_title}\" "
            "(focus: {focus}):\n{user_input}\nRelated concepts: {key_terms}"
        ),
    },
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class TemplateOverride(BaseModel):
    """An admin-maintained replacement body for a built-in template."""

    body: str
    max_chars: int | None = None


class Template(BaseModel):
    key: str
    body: str
    max_chars: int
    profile: PhaseProfile

    @property
    def directive(self) -> str:
        return CONTENT_TYPE_DIRECTIVES[self.profile.content_type]

    def render(self, **values: str) -> str:
        """Substitute named placeholders and append the framing directives.

        Profile fields fill ``phase_title``, ``difficulty``, ``focus`` and
        ``key_terms`` unless given. Unknown placeholders render empty.
        """
        fields = {
            "phase_title": self.profile.title_short,
            "difficulty": self.profile.difficulty,
            "focus": self.profile.focus,
            "key_terms": ", ".join(self.profile.key_terms),
        }
        fields.update({k: v for k, v in values.items() if v is not None})

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            return _clip(str(fields.get(name, "")), FIELD_LIMITS.get(name, DEFAULT_FIELD_LIMIT))

        body = _PLACEHOLDER.sub(substitute, self.body).strip()
        suffix = f"\n\n{self.directive}\n\n{MARKUP_DIRECTIVE}"
        body_budget = max(self.max_chars - len(suffix), 0)
        return _clip(_clip(body, body_budget) + suffix, self.max_chars)


class TemplateSelector:
    """Maps (phase id, interaction kind) to a bounded template."""

    def __init__(self, profiles: dict[str, PhaseProfile] | None = None):
        self._profiles = dict(profiles or DEFAULT_PHASE_PROFILES)

    @property
    def phase_count(self) -> int:
        return len(self._profiles)

    @property
    def phase_ids(self) -> list[str]:
        return list(self._profiles)

    def profile_for(self, phase_id: str) -> PhaseProfile:
        return self._profiles.get(str(phase_id).strip(), INTRODUCTORY_PROFILE)

    def select_template(
        self,
        phase_id: str,
        interaction_kind: str,
        overrides: dict[str, TemplateOverride] | None = None,
    ) -> Template:
        profile = self.profile_for(phase_id)
        key = TEMPLATE_KEYS.get(interaction_kind.strip().lower(), DEFAULT_TEMPLATE_KEY)
        bodies = _BODIES[key]
        body = bodies.get(profile.difficulty, bodies["default"])
        budget = TEMPLATE_BUDGETS[key]
        override = (overrides or {}).get(key)
        if override is not None:
            body = override.body
            if override.max_chars:
                budget = min(override.max_chars, budget)
        return Template(key=key, body=body, max_chars=budget, profile=profile)


class TemplateOverrideStore:
    """Active ``content_templates`` rows, read through an in-process TTL cache."""

    _CACHE_KEY = "overrides"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], ttl_seconds: int = 300):
        self._session_factory = session_factory
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=ttl_seconds)

    async def get_overrides(self) -> dict[str, TemplateOverride]:
        cached = self._cache.get(self._CACHE_KEY)
        if cached is not None:
            return cached

        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(ContentTemplate).where(ContentTemplate.is_active.is_(True))
                    )
                ).scalars().all()
        except Exception as e:
            logger.warning("Template overrides unavailable — using built-ins: %s", str(e)[:200])
            return {}

        overrides = {
            row.template_key: TemplateOverride(body=row.template_content, max_chars=row.max_chars)
            for row in rows
            if row.template_key in TEMPLATE_BUDGETS
        }
        self._cache[self._CACHE_KEY] = overrides
        if overrides:
            logger.info("Loaded %d template overrides", len(overrides))
        return overrides

    def clear(self):
        self._cache.clear()


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 1:
        return text[:limit]
    return text[: limit - 1].rstrip() + "…"

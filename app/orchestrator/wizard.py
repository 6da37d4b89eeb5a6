"""Subject wizard — multi-step, checkpointed creation of a learning subject.

Steps: analyze (preflight, not saved) → generate_syllabus → generate_metadata
→ generate_prompt → finalize. Each generating step writes its output to the
draft checkpoint before returning, so a failure in a later step never loses
earlier work.
"""

import asyncio
import inspect
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from app.config import Settings
from app.errors import (
    DraftIncompleteError,
    DraftStateError,
    ExhaustedRetriesError,
    GenerationTimeoutError,
    PersistenceError,
    UpstreamError,
    WizardStepError,
)
from app.models.subject_draft import STATUS_DRAFT
from app.orchestrator.schemas import (
    Draft,
    DraftStep,
    RetryNotice,
    TopicInput,
    WizardStepRequest,
    WizardStepResult,
)
from app.services.backoff import RetryCallback, with_retry
from app.services.drafts import DraftCheckpointStore
from app.services.llm_client import LLMClient, check_artifact, load_prompt

logger = logging.getLogger(__name__)

ANALYZE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "is_suitable": {"type": "boolean"},
        "reasoning": {"type": "string"},
        "suggested_scope": {"type": "string"},
        "estimated_phases": {"type": "number"},
        "recommended_duration": {"type": "string"},
    },
    "required": ["is_suitable", "reasoning", "suggested_scope", "estimated_phases"],
}

SYLLABUS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "phases": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "expectedOutputs": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["id", "title", "description", "expectedOutputs"],
            },
        },
    },
    "required": ["phases"],
}

METADATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "tagline": {"type": "string"},
        "overall_goal": {"type": "string"},
        "hero_description": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "primary_color": {"type": "string"},
        "secondary_color": {"type": "string"},
        "subject_key": {"type": "string"},
    },
    "required": [
        "title", "tagline", "overall_goal", "hero_description",
        "tags", "primary_color", "secondary_color", "subject_key",
    ],
}

PROMPT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"system_prompt": {"type": "string"}},
    "required": ["system_prompt"],
}


class SubjectWizard:
    """Drives the wizard steps against the generative service and the draft store."""

    def __init__(
        self,
        llm: LLMClient,
        drafts: DraftCheckpointStore,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._llm = llm
        self._drafts = drafts
        self._settings = settings
        self._sleep = sleep

    async def run_step(
        self,
        action: str,
        request: WizardStepRequest,
        on_retry: RetryCallback | None = None,
    ) -> WizardStepResult:
        """Dispatch a wizard step by action name."""
        if action == "analyze":
            return await self.analyze(_require_topic(action, request), on_retry)
        if action == "generate_syllabus":
            topic = request.topic
            if topic is None and request.draft_id is None:
                raise ValueError("generate_syllabus needs a topic or an existing draft")
            return await self.generate_syllabus(topic, request.draft_id, on_retry)
        if action == "generate_metadata":
            return await self.generate_metadata(_require_draft(action, request), on_retry)
        if action == "generate_prompt":
            return await self.generate_prompt(_require_draft(action, request), on_retry)
        raise ValueError(f"Unknown wizard action: {action}")

    async def analyze(self, topic: TopicInput, on_retry: RetryCallback | None = None) -> WizardStepResult:
        payload = {
            "topic": topic.topic,
            "description": topic.description or "Not provided",
            "audience": topic.audience or "General learners",
        }
        artifact, retries = await self._generate("analyze", None, payload, ANALYZE_SCHEMA, on_retry)
        return WizardStepResult(action="analyze", artifact=artifact, retries=retries)

    async def generate_syllabus(
        self,
        topic: TopicInput | None,
        draft_id: uuid.UUID | str | None = None,
        on_retry: RetryCallback | None = None,
    ) -> WizardStepResult:
        """Generate the syllabus. Creates the draft on first success when no id is given."""
        if draft_id is not None:
            draft = await self._editable_draft(draft_id)
            topic = topic or _topic_of(draft)

        payload = {
            "topic": topic.topic,
            "description": topic.description or "Not provided",
            "audience": topic.audience or "General learners",
            "goals": topic.goals or ["Not specified"],
        }
        artifact, retries = await self._generate(
            "generate_syllabus", draft_id, payload, SYLLABUS_SCHEMA, on_retry,
        )
        step = DraftStep(syllabus=artifact)

        try:
            if draft_id is None:
                saved = await self._drafts.create_draft(topic, step)
            else:
                saved = await self._drafts.update_draft(draft_id, step)
        except PersistenceError as e:
            logger.error("Draft checkpoint failed | step=generate_syllabus | %s", str(e)[:200])
            return WizardStepResult(
                action="generate_syllabus", artifact=artifact, draft_id=draft_id, retries=retries,
            )
        return WizardStepResult(
            action="generate_syllabus", artifact=artifact,
            draft_id=saved.id, checkpointed=True, retries=retries,
        )

    async def generate_metadata(
        self,
        draft_id: uuid.UUID | str,
        on_retry: RetryCallback | None = None,
    ) -> WizardStepResult:
        draft = await self._editable_draft(draft_id)
        if not draft.syllabus:
            raise DraftIncompleteError(["syllabus"])

        payload = {
            "topic": draft.topic,
            "audience": draft.audience or "General learners",
            "goals": draft.goals,
            "phases": [p.get("title", "") for p in _phases(draft)],
        }
        artifact, retries = await self._generate(
            "generate_metadata", draft_id, payload, METADATA_SCHEMA, on_retry,
        )
        return await self._checkpoint(
            "generate_metadata", draft.id, DraftStep(subject_metadata=artifact), artifact, retries,
        )

    async def generate_prompt(
        self,
        draft_id: uuid.UUID | str,
        on_retry: RetryCallback | None = None,
    ) -> WizardStepResult:
        draft = await self._editable_draft(draft_id)
        if not draft.syllabus:
            raise DraftIncompleteError(["syllabus"])

        payload = {
            "topic": draft.topic,
            "metadata": draft.subject_metadata or {},
            "phases": [
                {"title": p.get("title", ""), "description": p.get("description", "")}
                for p in _phases(draft)
            ],
        }
        artifact, retries = await self._generate(
            "generate_prompt", draft_id, payload, PROMPT_SCHEMA, on_retry,
        )
        return await self._checkpoint(
            "generate_prompt", draft.id, DraftStep(system_prompt=artifact["system_prompt"]),
            artifact, retries,
        )

    async def finalize(self, draft_id: uuid.UUID | str) -> Draft:
        return await self._drafts.finalize_draft(draft_id)

    async def _editable_draft(self, draft_id: uuid.UUID | str) -> Draft:
        draft = await self._drafts.get_draft(draft_id)
        if draft.status != STATUS_DRAFT:
            raise DraftStateError(f"Draft {draft_id} is {draft.status}; only drafts can be edited")
        return draft

    async def _checkpoint(
        self,
        action: str,
        draft_id: uuid.UUID,
        step: DraftStep,
        artifact: dict[str, Any],
        retries: int,
    ) -> WizardStepResult:
        try:
            await self._drafts.update_draft(draft_id, step)
            checkpointed = True
        except PersistenceError as e:
            logger.error("Draft checkpoint failed | step=%s | draft=%s | %s", action, draft_id, str(e)[:200])
            checkpointed = False
        return WizardStepResult(
            action=action, artifact=artifact, draft_id=draft_id,
            checkpointed=checkpointed, retries=retries,
        )

    async def _generate(
        self,
        action: str,
        draft_id: uuid.UUID | str | None,
        payload: dict[str, Any],
        schema: dict[str, Any],
        on_retry: RetryCallback | None,
    ) -> tuple[dict[str, Any], int]:
        """Call the model under retry; returns the artifact and the retry count."""
        draft_ref = str(draft_id) if draft_id else None
        if not self._llm.is_configured:
            raise WizardStepError(
                action, draft_ref,
                UpstreamError("Generative service is not configured", retryable=False),
            )

        system_prompt = load_prompt(f"wizard_{action.removeprefix('generate_')}")
        user_message = json.dumps(payload, indent=2, ensure_ascii=False)
        timeout = self._settings.wizard_timeout_seconds
        retries = 0

        async def notify(notice: RetryNotice):
            nonlocal retries
            retries += 1
            logger.info(
                "Wizard retrying | step=%s | attempt=%d/%d | delay=%.1fs",
                action, notice.attempt, notice.max_attempts, notice.delay,
            )
            if on_retry is not None:
                result = on_retry(notice)
                if inspect.isawaitable(result):
                    await result

        async def attempt() -> dict[str, Any]:
            try:
                artifact = await asyncio.wait_for(
                    self._llm.complete_json(
                        user_message,
                        response_schema=schema,
                        system=system_prompt,
                        temperature=self._settings.wizard_temperature,
                        max_tokens=self._settings.wizard_max_tokens,
                    ),
                    timeout,
                )
            except asyncio.TimeoutError as e:
                raise GenerationTimeoutError(timeout) from e
            check_artifact(artifact, schema)
            return artifact

        try:
            artifact = await with_retry(
                attempt,
                self._settings.wizard_max_attempts,
                base_delay=self._settings.llm_retry_base_delay,
                retry_on=(UpstreamError, GenerationTimeoutError),
                on_retry=notify,
                sleep=self._sleep,
            )
        except (ExhaustedRetriesError, UpstreamError) as e:
            logger.error("Wizard step failed | step=%s | draft=%s | %s", action, draft_ref, str(e)[:200])
            raise WizardStepError(action, draft_ref, e) from e

        logger.info("Wizard step OK | step=%s | draft=%s | retries=%d", action, draft_ref, retries)
        return artifact, retries


def _require_topic(action: str, request: WizardStepRequest) -> TopicInput:
    if request.topic is None:
        raise ValueError(f"{action} needs a topic")
    return request.topic


def _require_draft(action: str, request: WizardStepRequest) -> uuid.UUID:
    if request.draft_id is None:
        raise ValueError(f"{action} needs a draftId")
    return request.draft_id


def _topic_of(draft: Draft) -> TopicInput:
    return TopicInput(
        topic=draft.topic,
        description=draft.description,
        audience=draft.audience,
        goals=draft.goals,
    )


def _phases(draft: Draft) -> list[dict[str, Any]]:
    phases = (draft.syllabus or {}).get("phases", [])
    return [p for p in phases if isinstance(p, dict)]

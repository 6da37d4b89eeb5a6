"""Generation orchestrator — cache-first content generation with fallback.

Responsibilities:
  - Fingerprint the request context and check the cache
  - Collapse concurrent misses for the same cache tuple into one generation
  - Race the (retried) upstream call against the generation time budget
  - Normalize and validate output, writing valid content through to the cache
  - Serve deterministic fallback content when anything on the generation path fails

A call abandoned on timeout keeps running until its cancellation lands; its
outcome is consumed and dropped. Writes are guarded by a per-tuple generation
epoch, so only the most recently started generation for a tuple reaches the cache.
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from app.config import Settings
from app.errors import (
    ContentValidationError,
    ExhaustedRetriesError,
    GenerationTimeoutError,
    PersistenceError,
    UpstreamError,
)
from app.orchestrator.fallback_content import fallback_for
from app.orchestrator.schemas import (
    CacheEntryCreate,
    GenerationContext,
    GenerationRequest,
    GenerationResponse,
)
from app.services.backoff import with_retry
from app.services.cache import ContentCacheStore, utcnow
from app.services.content_validator import normalize_content, validate_content
from app.services.fingerprint import make_fingerprint
from app.services.llm_client import LLMClient, load_prompt
from app.services.templates import PhaseProfile, TemplateOverrideStore, TemplateSelector

logger = logging.getLogger(__name__)

CacheTuple = tuple[str, str, str, str]


class GenerationOrchestrator:
    """Serves learning content for (user, phase, interaction kind, context)."""

    def __init__(
        self,
        cache: ContentCacheStore,
        templates: TemplateSelector,
        llm: LLMClient,
        settings: Settings,
        template_overrides: TemplateOverrideStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._cache = cache
        self._templates = templates
        self._llm = llm
        self._settings = settings
        self._overrides = template_overrides
        self._clock = clock
        self._sleep = sleep
        self._system_prompt = load_prompt("content_system")

        self._inflight: dict[CacheTuple, asyncio.Task] = {}
        self._epochs: dict[CacheTuple, int] = {}
        self._epoch_counter = itertools.count(1)
        self._abandoned: set[asyncio.Future] = set()

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        fingerprint = make_fingerprint(
            request.phase_id,
            request.interaction_kind,
            request.context,
            self._settings.recent_interactions_window,
        )
        key: CacheTuple = (request.user_id, request.phase_id, request.interaction_kind, fingerprint)

        try:
            entry = await self._cache.lookup(*key)
        except PersistenceError as e:
            logger.warning("Cache lookup failed, treating as miss | %s", str(e)[:200])
            entry = None

        if entry is not None:
            return GenerationResponse(
                content=entry.content,
                from_cache=True,
                cache_id=entry.id,
                usage_count=entry.usage_count,
            )

        logger.info(
            "Cache MISS | phase=%s | kind=%s | key=%s",
            request.phase_id, request.interaction_kind, fingerprint[:12],
        )
        if not self._settings.dedupe_inflight_generations:
            return await self._produce(request, key)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._produce(request, key))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget_inflight(key, t))
        else:
            logger.info("Joining in-flight generation | key=%s", fingerprint[:12])
        # One waiter giving up must not cancel the generation for the others
        return await asyncio.shield(task)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def _forget_inflight(self, key: CacheTuple, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _produce(self, request: GenerationRequest, key: CacheTuple) -> GenerationResponse:
        profile = self._templates.profile_for(request.phase_id)

        if not self._llm.is_configured:
            return self._fallback(request, profile, "demo mode")

        overrides = await self._overrides.get_overrides() if self._overrides else None
        template = self._templates.select_template(
            request.phase_id, request.interaction_kind, overrides,
        )
        prompt = template.render(**_template_values(request.context))

        epoch = next(self._epoch_counter)
        self._epochs[key] = epoch

        try:
            raw = await self._call_with_budget(prompt)
        except GenerationTimeoutError as e:
            self._release_epoch(key, epoch)
            return self._fallback(request, profile, str(e))
        except (ExhaustedRetriesError, UpstreamError) as e:
            self._release_epoch(key, epoch)
            return self._fallback(request, profile, f"upstream: {str(e)[:200]}")

        content = normalize_content(raw)
        try:
            validate_content(content, profile.difficulty, self._settings.content_min_length)
        except ContentValidationError as e:
            self._release_epoch(key, epoch)
            return self._fallback(request, profile, f"invalid content: {e}")

        if self._epochs.get(key) != epoch:
            logger.info("Generation superseded, skipping cache write | key=%s", key[3][:12])
            return GenerationResponse(content=content, from_cache=False)
        self._release_epoch(key, epoch)

        now = self._clock()
        entry_in = CacheEntryCreate(
            user_id=request.user_id,
            phase_id=request.phase_id,
            interaction_kind=request.interaction_kind,
            context_hash=key[3],
            content=content,
            expires_at=now + timedelta(seconds=self._settings.ttl_for(request.interaction_kind)),
            generation_metadata={
                "is_completed": self._settings.is_completed_kind(request.interaction_kind),
                "generated_at": now.isoformat(),
                "template_key": template.key,
            },
        )
        try:
            entry = await self._cache.write(entry_in)
        except PersistenceError as e:
            logger.warning("Cache write failed, serving uncached content | %s", str(e)[:200])
            return GenerationResponse(content=content, from_cache=False)

        return GenerationResponse(
            content=entry.content,
            from_cache=False,
            cache_id=entry.id,
            usage_count=entry.usage_count,
        )

    async def _call_with_budget(self, prompt: str) -> str:
        """Run the retried upstream call, giving up once the time budget is spent."""
        budget = self._settings.generation_timeout_seconds
        call = asyncio.ensure_future(
            with_retry(
                lambda: self._llm.complete(
                    prompt,
                    system=self._system_prompt,
                    temperature=self._settings.generation_temperature,
                    max_tokens=self._settings.generation_max_tokens,
                ),
                self._settings.llm_max_attempts,
                base_delay=self._settings.llm_retry_base_delay,
                sleep=self._sleep,
            )
        )
        try:
            done, _ = await asyncio.wait({call}, timeout=budget)
        except asyncio.CancelledError:
            call.cancel()
            raise

        if call in done:
            return call.result()

        call.cancel()
        self._abandoned.add(call)
        call.add_done_callback(self._discard_outcome)
        raise GenerationTimeoutError(budget)

    def _discard_outcome(self, call: asyncio.Future):
        self._abandoned.discard(call)
        if call.cancelled():
            return
        error = call.exception()
        if error is not None:
            logger.debug("Abandoned generation finished with error: %s", str(error)[:100])
        else:
            logger.debug("Abandoned generation finished late; result dropped")

    def _release_epoch(self, key: CacheTuple, epoch: int):
        if self._epochs.get(key) == epoch:
            del self._epochs[key]

    def _fallback(self, request: GenerationRequest, profile: PhaseProfile, reason: str) -> GenerationResponse:
        logger.warning(
            "Fallback served | phase=%s | kind=%s | reason=%s",
            request.phase_id, request.interaction_kind, reason,
        )
        return GenerationResponse(
            content=fallback_for(request.phase_id, request.interaction_kind, profile),
            from_cache=False,
            is_fallback=True,
        )


def _template_values(context: GenerationContext) -> dict[str, str]:
    concepts = "\n".join(
        f"- {c.title}: {c.description}" if c.description else f"- {c.title}"
        for c in context.key_concepts
    )
    return {
        "objective": context.objective,
        "key_concepts": concepts,
        "user_input": context.user_input or "",
        "user_level": context.user_level.value,
    }

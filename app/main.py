"""Learning content engine — FastAPI application entry point.

Serves cached/generated phase content, learner progress and the subject
creation wizard.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.dependencies import (
    Components,
    build_components,
    get_cache_store,
    get_components,
    get_interaction_log,
    get_orchestrator,
    get_wizard,
)
from app.errors import (
    DraftIncompleteError,
    DraftNotFoundError,
    DraftStateError,
    PersistenceError,
    WizardStepError,
)
from app.orchestrator.generation import GenerationOrchestrator
from app.orchestrator.schemas import (
    GenerationRequest,
    ProgressInfo,
    RatingRequest,
    WizardAction,
    WizardStepRequest,
)
from app.orchestrator.wizard import SubjectWizard
from app.services.cache import ContentCacheStore
from app.services.interaction_log import InteractionLog

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("learnpath")


# ═══════════════ LIFESPAN ═══════════════

async def _purge_loop(cache: ContentCacheStore, interval: int):
    """Periodically drop expired cache rows. Reads already skip them."""
    while True:
        await asyncio.sleep(interval)
        try:
            await cache.purge_expired()
        except PersistenceError as e:
            logger.warning("Cache purge skipped | %s", str(e)[:200])


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Content engine starting | demo_mode=%s", settings.is_demo_mode)

    # Initialize database (graceful degradation if unavailable)
    from app.database import async_session_factory, close_db, init_db
    db_ok = await init_db()
    logger.info("Database: %s", "connected" if db_ok else "unavailable (serving uncached content)")

    components = build_components(settings, async_session_factory)
    app.state.components = components
    purge_task = asyncio.create_task(
        _purge_loop(components.cache, settings.purge_interval_seconds)
    )

    yield

    purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await purge_task
    await close_db()
    logger.info("Content engine shutting down")


# ═══════════════ APP ═══════════════

app = FastAPI(
    title="LearnPath Content API",
    description="Cached learning-content generation and subject authoring API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["POST", "OPTIONS", "GET"],
    allow_headers=["Content-Type"],
)


# ═══════════════ ERROR MAPPING ═══════════════

@app.exception_handler(WizardStepError)
async def wizard_step_error_handler(request: Request, exc: WizardStepError):
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "step": exc.step, "draftId": exc.draft_id},
    )


@app.exception_handler(DraftNotFoundError)
async def draft_not_found_handler(request: Request, exc: DraftNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(DraftStateError)
async def draft_state_handler(request: Request, exc: DraftStateError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(DraftIncompleteError)
async def draft_incomplete_handler(request: Request, exc: DraftIncompleteError):
    return JSONResponse(status_code=409, content={"error": str(exc), "missing": exc.missing})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure | %s %s | %s", request.method, request.url.path, str(exc)[:200])
    return JSONResponse(
        status_code=503,
        content={"error": "Storage is temporarily unavailable. Please try again later."},
    )


# ═══════════════ ENDPOINTS ═══════════════

@app.get("/health")
async def health(components: Components = Depends(get_components)):
    from app.database import ping_db

    return {
        "status": "ok",
        "demo_mode": components.settings.is_demo_mode,
        "has_anthropic": components.settings.has_anthropic_key,
        "database": await ping_db(components.session_factory),
        "inflight_generations": components.orchestrator.inflight_count,
    }


@app.post("/api/content/generate")
async def generate_content(
    body: GenerationRequest,
    background_tasks: BackgroundTasks,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    interaction_log: InteractionLog = Depends(get_interaction_log),
):
    """Serve content for one learner interaction, from cache when possible."""
    start = time.monotonic()
    result = await orchestrator.generate(body)
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Content served | user=%s | phase=%s | kind=%s | cache=%s | fallback=%s | %dms",
        body.user_id, body.phase_id, body.interaction_kind,
        result.from_cache, result.is_fallback, elapsed_ms,
    )

    # Log to DB in background (fire-and-forget)
    interaction_data = body.context.model_dump(mode="json", exclude={"session_id", "requested_at"})
    interaction_data["is_fallback"] = result.is_fallback
    background_tasks.add_task(
        interaction_log.record,
        user_id=body.user_id,
        phase_id=body.phase_id,
        interaction_kind=body.interaction_kind,
        interaction_data=interaction_data,
        from_cache=result.from_cache,
        time_spent_ms=elapsed_ms,
    )

    return JSONResponse(content=result.model_dump(mode="json", by_alias=True))


@app.post("/api/content/{cache_id}/rating", status_code=202)
async def rate_content(
    cache_id: str,
    body: RatingRequest,
    cache: ContentCacheStore = Depends(get_cache_store),
):
    recorded = await cache.rate(cache_id, body.score)
    return JSONResponse(status_code=202, content={"recorded": recorded})


@app.get("/api/progress/{user_id}")
async def progress(user_id: str, components: Components = Depends(get_components)):
    """Percentage of known phases the learner has live content for."""
    try:
        explored = await components.cache.explored_phases(user_id)
    except PersistenceError as e:
        logger.warning("Progress unavailable | user=%s | %s", user_id, str(e)[:200])
        explored = []

    known = components.templates.phase_ids
    total = components.templates.phase_count
    explored_known = [p for p in explored if p in known]
    percent = round(100 * len(explored_known) / total) if total else 0
    info = ProgressInfo(progress=percent, explored_phases=explored, total_phases=total)
    return JSONResponse(content=info.model_dump(mode="json", by_alias=True))


@app.post("/api/wizard/drafts/{draft_id}/finalize")
async def finalize_draft(draft_id: uuid.UUID, wizard: SubjectWizard = Depends(get_wizard)):
    draft = await wizard.finalize(draft_id)
    return JSONResponse(content=draft.model_dump(mode="json", by_alias=True))


@app.get("/api/wizard/drafts")
async def list_drafts(
    status: Literal["draft", "active"] | None = None,
    components: Components = Depends(get_components),
):
    """Saved drafts, most recently saved first."""
    drafts = await components.drafts.list_drafts(status=status)
    return JSONResponse(content=[d.model_dump(mode="json", by_alias=True) for d in drafts])


@app.get("/api/wizard/drafts/{draft_id}")
async def get_draft(draft_id: uuid.UUID, components: Components = Depends(get_components)):
    draft = await components.drafts.get_draft(draft_id)
    return JSONResponse(content=draft.model_dump(mode="json", by_alias=True))


@app.post("/api/wizard/{action}")
async def wizard_step(
    action: WizardAction,
    body: WizardStepRequest,
    wizard: SubjectWizard = Depends(get_wizard),
):
    """Run one subject wizard step; generating steps are checkpointed to the draft."""
    try:
        result = await wizard.run_step(action, body)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return JSONResponse(content=result.model_dump(mode="json", by_alias=True))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)

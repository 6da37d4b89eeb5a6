"""Component wiring.

Each service is built once at startup by ``build_components`` and stored on
``app.state.components``; request handlers receive them through Depends.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.orchestrator.generation import GenerationOrchestrator
from app.orchestrator.wizard import SubjectWizard
from app.services.cache import ContentCacheStore
from app.services.drafts import DraftCheckpointStore
from app.services.interaction_log import InteractionLog
from app.services.llm_client import LLMClient
from app.services.templates import TemplateOverrideStore, TemplateSelector


@dataclass
class Components:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    cache: ContentCacheStore
    templates: TemplateSelector
    llm: LLMClient
    drafts: DraftCheckpointStore
    interaction_log: InteractionLog
    orchestrator: GenerationOrchestrator
    wizard: SubjectWizard


def build_components(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    llm: LLMClient | None = None,
) -> Components:
    """Construct every service once, sharing one LLM client and session factory."""
    if llm is None:
        llm = LLMClient(
            settings.anthropic_api_key,
            settings.claude_model,
            request_timeout=settings.llm_request_timeout_seconds,
        )
    cache = ContentCacheStore(session_factory, settings.cache_version)
    templates = TemplateSelector()
    drafts = DraftCheckpointStore(session_factory)
    orchestrator = GenerationOrchestrator(
        cache,
        templates,
        llm,
        settings,
        template_overrides=TemplateOverrideStore(
            session_factory, ttl_seconds=settings.template_override_ttl_seconds,
        ),
    )
    return Components(
        settings=settings,
        session_factory=session_factory,
        cache=cache,
        templates=templates,
        llm=llm,
        drafts=drafts,
        interaction_log=InteractionLog(session_factory),
        orchestrator=orchestrator,
        wizard=SubjectWizard(llm, drafts, settings),
    )


def get_components(request: Request) -> Components:
    return request.app.state.components


async def get_orchestrator(components: Components = Depends(get_components)) -> GenerationOrchestrator:
    return components.orchestrator


async def get_wizard(components: Components = Depends(get_components)) -> SubjectWizard:
    return components.wizard


async def get_cache_store(components: Components = Depends(get_components)) -> ContentCacheStore:
    return components.cache


async def get_interaction_log(components: Components = Depends(get_components)) -> InteractionLog:
    return components.interaction_log

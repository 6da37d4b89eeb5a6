"""Draft checkpoint store for the multi-step subject wizard.

State machine: no draft → draft (first successful step) → draft (each later
step) → active (finalize). Abandoned drafts stay ``draft`` forever; nothing
here deletes a row.

Every write commits before returning, so a caller that crashes right after
update_draft() still leaves the step durably recorded.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import (
    DraftIncompleteError,
    DraftNotFoundError,
    DraftStateError,
    PersistenceError,
)
from app.models.subject_draft import STATUS_ACTIVE, STATUS_DRAFT, SubjectDraft
from app.orchestrator.schemas import Draft, DraftStep, TopicInput
from app.services.cache import STORE_ERRORS, utcnow

logger = logging.getLogger(__name__)


class DraftCheckpointStore:
    """Sole writer of ``subject_drafts`` rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def create_draft(self, topic: TopicInput, initial_step: DraftStep) -> Draft:
        now = self._clock()
        try:
            async with self._session_factory() as session:
                row = SubjectDraft(
                    status=STATUS_DRAFT,
                    topic=topic.topic,
                    description=topic.description,
                    audience=topic.audience,
                    goals=[g for g in topic.goals if g.strip()],
                    created_at=now,
                    last_saved_at=now,
                    **initial_step.produced_fields(),
                )
                session.add(row)
                await session.commit()
                logger.info("Draft created | id=%s | topic=%s", row.id, topic.topic[:60])
                return Draft.model_validate(row)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Draft create failed: {str(e)[:200]}") from e

    async def update_draft(self, draft_id: str | uuid.UUID, step: DraftStep) -> Draft:
        """Write a step's output into a draft that is still in progress."""
        row_id = _parse_id(draft_id)
        fields = step.produced_fields()
        try:
            async with self._session_factory() as session:
                row = await session.get(SubjectDraft, row_id)
                if row is None:
                    raise DraftNotFoundError(f"Draft {draft_id} not found")
                if row.status != STATUS_DRAFT:
                    raise DraftStateError(f"Draft {draft_id} is {row.status}; only drafts can be updated")

                for name, value in fields.items():
                    setattr(row, name, value)
                row.last_saved_at = self._clock()
                await session.commit()
                logger.info("Draft saved | id=%s | fields=%s", row.id, ",".join(sorted(fields)))
                return Draft.model_validate(row)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Draft update failed: {str(e)[:200]}") from e

    async def finalize_draft(self, draft_id: str | uuid.UUID) -> Draft:
        """Publish a draft once syllabus, metadata and prompt are all present."""
        row_id = _parse_id(draft_id)
        try:
            async with self._session_factory() as session:
                row = await session.get(SubjectDraft, row_id)
                if row is None:
                    raise DraftNotFoundError(f"Draft {draft_id} not found")
                if row.status == STATUS_ACTIVE:
                    return Draft.model_validate(row)

                missing = Draft.model_validate(row).missing_steps()
                if missing:
                    raise DraftIncompleteError(missing)

                now = self._clock()
                row.status = STATUS_ACTIVE
                row.finalized_at = now
                row.last_saved_at = now
                await session.commit()
                logger.info("Draft finalized | id=%s", row.id)
                return Draft.model_validate(row)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Draft finalize failed: {str(e)[:200]}") from e

    async def get_draft(self, draft_id: str | uuid.UUID) -> Draft:
        row_id = _parse_id(draft_id)
        try:
            async with self._session_factory() as session:
                row = await session.get(SubjectDraft, row_id)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Draft read failed: {str(e)[:200]}") from e
        if row is None:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        return Draft.model_validate(row)

    async def list_drafts(self, status: str | None = None) -> list[Draft]:
        stmt = select(SubjectDraft).order_by(SubjectDraft.last_saved_at.desc())
        if status is not None:
            stmt = stmt.where(SubjectDraft.status == status)
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except STORE_ERRORS as e:
            raise PersistenceError(f"Draft list failed: {str(e)[:200]}") from e
        return [Draft.model_validate(r) for r in rows]


def _parse_id(draft_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(draft_id, uuid.UUID):
        return draft_id
    try:
        return uuid.UUID(str(draft_id))
    except ValueError as e:
        raise DraftNotFoundError(f"Draft {draft_id} not found") from e

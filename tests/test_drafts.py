"""Tests for the draft checkpoint store — durability and the draft state machine."""

import uuid

import pytest

from app.database import make_engine, make_session_factory
from app.errors import DraftIncompleteError, DraftNotFoundError, DraftStateError, PersistenceError
from app.orchestrator.schemas import DraftStep, TopicInput
from app.services.drafts import DraftCheckpointStore

SYLLABUS = {"phases": [{"id": "1", "title": "Basics", "description": "Start", "expectedOutputs": []}]}
METADATA = {"title": "Prompting", "tagline": "Ask better", "tags": ["ai"]}


@pytest.fixture
def drafts(session_factory):
    return DraftCheckpointStore(session_factory)


@pytest.fixture
def topic():
    return TopicInput(topic="Prompt engineering", audience="Analysts", goals=["Write prompts", " "])


async def _complete_draft(drafts, topic):
    draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
    await drafts.update_draft(draft.id, DraftStep(subject_metadata=METADATA))
    await drafts.update_draft(draft.id, DraftStep(system_prompt="You are a coach."))
    return draft


class TestCreateAndUpdate:
    @pytest.mark.asyncio
    async def test_create_draft(self, drafts, topic):
        draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
        assert draft.status == "draft"
        assert draft.topic == "Prompt engineering"
        assert draft.goals == ["Write prompts"]
        assert draft.syllabus == SYLLABUS
        assert draft.subject_metadata is None
        assert draft.missing_steps() == ["metadata", "prompt"]

    @pytest.mark.asyncio
    async def test_update_only_touches_produced_fields(self, drafts, topic):
        draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
        updated = await drafts.update_draft(draft.id, DraftStep(subject_metadata=METADATA))
        assert updated.syllabus == SYLLABUS
        assert updated.subject_metadata == METADATA

    @pytest.mark.asyncio
    async def test_update_accepts_string_id(self, drafts, topic):
        draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
        updated = await drafts.update_draft(str(draft.id), DraftStep(system_prompt="p"))
        assert updated.system_prompt == "p"

    @pytest.mark.asyncio
    async def test_update_survives_new_engine(self, drafts, topic, db_url):
        draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
        await drafts.update_draft(draft.id, DraftStep(subject_metadata=METADATA))

        # A fresh engine stands in for a restarted process
        engine = make_engine(db_url)
        try:
            reopened = DraftCheckpointStore(make_session_factory(engine))
            restored = await reopened.get_draft(draft.id)
        finally:
            await engine.dispose()
        assert restored.syllabus == SYLLABUS
        assert restored.subject_metadata == METADATA

    @pytest.mark.asyncio
    async def test_update_unknown_draft(self, drafts):
        with pytest.raises(DraftNotFoundError):
            await drafts.update_draft(uuid.uuid4(), DraftStep(system_prompt="p"))

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, drafts):
        with pytest.raises(DraftNotFoundError):
            await drafts.get_draft("not-a-uuid")


class TestFinalize:
    @pytest.mark.asyncio
    async def test_finalize_complete_draft(self, drafts, topic):
        draft = await _complete_draft(drafts, topic)
        final = await drafts.finalize_draft(draft.id)
        assert final.status == "active"
        assert final.finalized_at is not None

    @pytest.mark.asyncio
    async def test_finalize_incomplete_draft(self, drafts, topic):
        draft = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))
        with pytest.raises(DraftIncompleteError) as exc_info:
            await drafts.finalize_draft(draft.id)
        assert exc_info.value.missing == ["metadata", "prompt"]
        assert (await drafts.get_draft(draft.id)).status == "draft"

    @pytest.mark.asyncio
    async def test_finalize_twice_is_noop(self, drafts, topic):
        draft = await _complete_draft(drafts, topic)
        first = await drafts.finalize_draft(draft.id)
        second = await drafts.finalize_draft(draft.id)
        assert second.status == "active"
        assert second.finalized_at.replace(tzinfo=None) == first.finalized_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_active_draft_cannot_be_updated(self, drafts, topic):
        draft = await _complete_draft(drafts, topic)
        await drafts.finalize_draft(draft.id)
        with pytest.raises(DraftStateError):
            await drafts.update_draft(draft.id, DraftStep(system_prompt="changed"))

    @pytest.mark.asyncio
    async def test_finalize_unknown_draft(self, drafts):
        with pytest.raises(DraftNotFoundError):
            await drafts.finalize_draft(uuid.uuid4())


class TestListing:
    @pytest.mark.asyncio
    async def test_list_by_status(self, drafts, topic):
        complete = await _complete_draft(drafts, topic)
        await drafts.finalize_draft(complete.id)
        pending = await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))

        assert [d.id for d in await drafts.list_drafts(status="draft")] == [pending.id]
        assert [d.id for d in await drafts.list_drafts(status="active")] == [complete.id]
        assert len(await drafts.list_drafts()) == 2


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_create_failure_raises_persistence_error(self, engine, drafts, topic):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE subject_drafts")

        with pytest.raises(PersistenceError):
            await drafts.create_draft(topic, DraftStep(syllabus=SYLLABUS))

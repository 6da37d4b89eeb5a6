"""Tests for the relational content cache store."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.errors import PersistenceError
from app.models.content_cache import ContentCache
from app.orchestrator.schemas import CacheEntryCreate
from app.services.cache import ContentCacheStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(session_factory, clock):
    return ContentCacheStore(session_factory, cache_version="2", clock=clock)


def _entry(content="<div>cached</div>", expires_in=timedelta(days=7), **overrides) -> CacheEntryCreate:
    values = {
        "user_id": "user-1",
        "phase_id": "3",
        "interaction_kind": "introduction",
        "context_hash": "a" * 32,
        "content": content,
        "expires_at": T0 + expires_in,
        "generation_metadata": {"is_completed": False, "template_key": "phase_introduction"},
    }
    values.update(overrides)
    return CacheEntryCreate(**values)


async def _row_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(ContentCache))).scalar_one()


class TestLookupAndWrite:
    @pytest.mark.asyncio
    async def test_miss_on_empty_store(self, store):
        assert await store.lookup("user-1", "3", "introduction", "a" * 32) is None

    @pytest.mark.asyncio
    async def test_write_then_lookup(self, store):
        written = await store.write(_entry())
        assert written.usage_count == 1
        assert written.cache_version == "2"

        hit = await store.lookup("user-1", "3", "introduction", "a" * 32)
        assert hit is not None
        assert hit.id == written.id
        assert hit.content == "<div>cached</div>"
        assert hit.usage_count == 2
        assert hit.generation_metadata["template_key"] == "phase_introduction"

    @pytest.mark.asyncio
    async def test_usage_count_counts_every_serve(self, store):
        await store.write(_entry())
        for _ in range(4):
            hit = await store.lookup("user-1", "3", "introduction", "a" * 32)
        assert hit.usage_count == 5

    @pytest.mark.asyncio
    async def test_lookup_scoped_to_identity(self, store):
        await store.write(_entry())
        assert await store.lookup("user-2", "3", "introduction", "a" * 32) is None
        assert await store.lookup("user-1", "4", "introduction", "a" * 32) is None
        assert await store.lookup("user-1", "3", "content", "a" * 32) is None
        assert await store.lookup("user-1", "3", "introduction", "b" * 32) is None

    @pytest.mark.asyncio
    async def test_duplicate_write_replaces_and_resets_usage(self, store, session_factory):
        first = await store.write(_entry(content="<div>old</div>"))
        await store.lookup("user-1", "3", "introduction", "a" * 32)
        assert await store.rate(first.id, 1.0) is True

        second = await store.write(_entry(content="<div>new</div>"))
        assert second.id == first.id
        assert second.content == "<div>new</div>"
        assert second.usage_count == 1
        assert second.success_score is None
        assert await _row_count(session_factory) == 1


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_entry_not_served(self, store, session_factory):
        await store.write(_entry(expires_in=timedelta(seconds=-1)))
        assert await store.lookup("user-1", "3", "introduction", "a" * 32) is None
        # Row still exists until purge runs
        assert await _row_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_entry_expires_as_clock_advances(self, store, clock):
        await store.write(_entry(expires_in=timedelta(hours=1)))
        assert await store.lookup("user-1", "3", "introduction", "a" * 32) is not None

        clock.now = T0 + timedelta(hours=1, seconds=1)
        assert await store.lookup("user-1", "3", "introduction", "a" * 32) is None

    @pytest.mark.asyncio
    async def test_purge_removes_only_expired(self, store, session_factory):
        await store.write(_entry(context_hash="a" * 32, expires_in=timedelta(seconds=-1)))
        await store.write(_entry(context_hash="b" * 32, expires_in=timedelta(days=1)))

        assert await store.purge_expired() == 1
        assert await _row_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_purge_is_idempotent(self, store):
        await store.write(_entry(expires_in=timedelta(seconds=-1)))
        assert await store.purge_expired() == 1
        assert await store.purge_expired() == 0


class TestVersioning:
    @pytest.mark.asyncio
    async def test_stale_version_deleted_on_read(self, session_factory, clock):
        old_store = ContentCacheStore(session_factory, cache_version="1", clock=clock)
        await old_store.write(_entry())

        new_store = ContentCacheStore(session_factory, cache_version="2", clock=clock)
        assert await new_store.lookup("user-1", "3", "introduction", "a" * 32) is None
        assert await _row_count(session_factory) == 0


class TestRating:
    @pytest.mark.asyncio
    async def test_rate_existing(self, store, session_factory):
        written = await store.write(_entry())
        assert await store.rate(written.id, 4.5) is True

        async with session_factory() as session:
            row = await session.get(ContentCache, written.id)
        assert row.success_score == 4.5

    @pytest.mark.asyncio
    async def test_rate_unknown_id(self, store):
        assert await store.rate(uuid.uuid4(), 3.0) is False

    @pytest.mark.asyncio
    async def test_rate_malformed_id_never_raises(self, store):
        assert await store.rate("not-a-uuid", 3.0) is False


class TestUserQueries:
    @pytest.mark.asyncio
    async def test_explored_phases_sorted_and_live_only(self, store):
        await store.write(_entry(phase_id="10"))
        await store.write(_entry(phase_id="2"))
        await store.write(_entry(phase_id="2", interaction_kind="content"))
        await store.write(_entry(phase_id="intro"))
        await store.write(_entry(phase_id="4", expires_in=timedelta(seconds=-1)))

        assert await store.explored_phases("user-1") == ["2", "10", "intro"]
        assert await store.explored_phases("user-2") == []

    @pytest.mark.asyncio
    async def test_clear_user_cache(self, store, session_factory):
        await store.write(_entry(phase_id="1"))
        await store.write(_entry(phase_id="2"))
        await store.write(_entry(phase_id="2", user_id="user-2"))

        assert await store.clear_user_cache("user-1", phase_id="2") == 1
        assert await store.clear_user_cache("user-1") == 1
        assert await _row_count(session_factory) == 1


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_lookup_failure_raises_persistence_error(self, engine, store):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE content_cache")

        with pytest.raises(PersistenceError):
            await store.lookup("user-1", "3", "introduction", "a" * 32)

    @pytest.mark.asyncio
    async def test_write_failure_raises_persistence_error(self, engine, store):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE content_cache")

        with pytest.raises(PersistenceError):
            await store.write(_entry())

"""Content cache store backed by the relational ``content_cache`` table.

Expiry is checked at read time, so a row past ``expires_at`` is never served
even before ``purge_expired`` runs. Rows written under an older
``cache_version`` are deleted on read and treated as absent.

No lock spans lookup and write: two concurrent misses may both write and the
later write wins. Usage increments are atomic per statement but not ordered
across concurrent requests.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import PersistenceError
from app.models.content_cache import ContentCache
from app.orchestrator.schemas import CacheEntry, CacheEntryCreate

logger = logging.getLogger(__name__)

# asyncpg surfaces refused connections as OSError before SQLAlchemy wraps them.
STORE_ERRORS = (SQLAlchemyError, OSError)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentCacheStore:
    """Sole writer of ``content_cache`` rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_version: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._cache_version = cache_version
        self._clock = clock

    async def lookup(
        self,
        user_id: str,
        phase_id: str,
        interaction_kind: str,
        fingerprint: str,
    ) -> CacheEntry | None:
        """Return the freshest live entry and count the hit, or None on miss."""
        now = self._clock()
        stmt = (
            select(ContentCache)
            .where(
                ContentCache.user_id == user_id,
                ContentCache.phase_id == phase_id,
                ContentCache.interaction_kind == interaction_kind,
                ContentCache.context_hash == fingerprint,
                ContentCache.expires_at > now,
            )
            .order_by(ContentCache.updated_at.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return None

                if row.cache_version != self._cache_version:
                    logger.info(
                        "Cache STALE | key=%s | version=%s (current %s)",
                        fingerprint[:12], row.cache_version, self._cache_version,
                    )
                    await session.delete(row)
                    await session.commit()
                    return None

                await session.execute(
                    update(ContentCache)
                    .where(ContentCache.id == row.id)
                    .values(usage_count=ContentCache.usage_count + 1)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                await session.refresh(row)
                logger.info(
                    "Cache HIT | phase=%s | kind=%s | key=%s | usage=%d",
                    phase_id, interaction_kind, fingerprint[:12], row.usage_count,
                )
                return CacheEntry.model_validate(row)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Cache lookup failed: {str(e)[:200]}") from e

    async def write(self, entry: CacheEntryCreate) -> CacheEntry:
        """Insert, or on duplicate key replace the row's content; usage resets to 1 and the rating clears."""
        now = self._clock()
        values = {
            "content": entry.content,
            "expires_at": entry.expires_at,
            "generation_metadata": entry.generation_metadata,
            "cache_version": self._cache_version,
            "usage_count": 1,
            "success_score": None,
            "updated_at": now,
        }
        identity = (
            ContentCache.user_id == entry.user_id,
            ContentCache.phase_id == entry.phase_id,
            ContentCache.interaction_kind == entry.interaction_kind,
            ContentCache.context_hash == entry.context_hash,
        )
        try:
            async with self._session_factory() as session:
                row = ContentCache(
                    user_id=entry.user_id,
                    phase_id=entry.phase_id,
                    interaction_kind=entry.interaction_kind,
                    context_hash=entry.context_hash,
                    created_at=now,
                    **values,
                )
                session.add(row)
                try:
                    await session.commit()
                    logger.info(
                        "Cache SET | phase=%s | kind=%s | key=%s",
                        entry.phase_id, entry.interaction_kind, entry.context_hash[:12],
                    )
                except IntegrityError:
                    await session.rollback()
                    await session.execute(
                        update(ContentCache)
                        .where(*identity)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    await session.commit()
                    row = (await session.execute(select(ContentCache).where(*identity))).scalar_one()
                    logger.info(
                        "Cache REPLACE | phase=%s | kind=%s | key=%s",
                        entry.phase_id, entry.interaction_kind, entry.context_hash[:12],
                    )
                return CacheEntry.model_validate(row)
        except STORE_ERRORS as e:
            raise PersistenceError(f"Cache write failed: {str(e)[:200]}") from e

    async def rate(self, entry_id: str | uuid.UUID, score: float) -> bool:
        """Record a quality signal. Never raises; returns whether it was stored."""
        try:
            row_id = entry_id if isinstance(entry_id, uuid.UUID) else uuid.UUID(str(entry_id))
            async with self._session_factory() as session:
                result = await session.execute(
                    update(ContentCache)
                    .where(ContentCache.id == row_id)
                    .values(success_score=score)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount > 0
        except (ValueError, *STORE_ERRORS) as e:
            logger.warning("Cache rating skipped | id=%s | %s", entry_id, str(e)[:200])
            return False

    async def purge_expired(self) -> int:
        """Delete every expired row. Safe to run concurrently and repeatedly."""
        now = self._clock()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(ContentCache)
                    .where(ContentCache.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except STORE_ERRORS as e:
            raise PersistenceError(f"Cache purge failed: {str(e)[:200]}") from e
        if result.rowcount:
            logger.info("Cache purged %d expired entries", result.rowcount)
        return result.rowcount or 0

    async def clear_user_cache(
        self,
        user_id: str,
        phase_id: str | None = None,
        interaction_kind: str | None = None,
    ) -> int:
        """Drop a user's entries, optionally narrowed to a phase and interaction kind."""
        stmt = delete(ContentCache).where(ContentCache.user_id == user_id)
        if phase_id is not None:
            stmt = stmt.where(ContentCache.phase_id == phase_id)
        if interaction_kind is not None:
            stmt = stmt.where(ContentCache.interaction_kind == interaction_kind)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt.execution_options(synchronize_session=False))
                await session.commit()
        except STORE_ERRORS as e:
            raise PersistenceError(f"Cache clear failed: {str(e)[:200]}") from e
        logger.info("Cache cleared %d entries | user=%s", result.rowcount or 0, user_id)
        return result.rowcount or 0

    async def explored_phases(self, user_id: str) -> list[str]:
        """Distinct phase ids the user has live content for, sorted."""
        now = self._clock()
        stmt = (
            select(ContentCache.phase_id)
            .where(ContentCache.user_id == user_id, ContentCache.expires_at > now)
            .distinct()
        )
        try:
            async with self._session_factory() as session:
                phases = (await session.execute(stmt)).scalars().all()
        except STORE_ERRORS as e:
            raise PersistenceError(f"Explored phases query failed: {str(e)[:200]}") from e
        return sorted(phases, key=_phase_sort_key)


def _phase_sort_key(phase_id: str) -> tuple[int, int | str]:
    return (0, int(phase_id)) if phase_id.isdigit() else (1, phase_id)

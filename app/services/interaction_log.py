"""Fire-and-forget learner interaction log (``user_interactions`` table)."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.user_interaction import UserInteraction

logger = logging.getLogger(__name__)


class InteractionLog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(
        self,
        user_id: str,
        phase_id: str,
        interaction_kind: str,
        interaction_data: dict[str, Any],
        from_cache: bool,
        time_spent_ms: int | None = None,
    ) -> bool:
        """Append one interaction row. Failures are logged and never raised."""
        try:
            async with self._session_factory() as session:
                session.add(
                    UserInteraction(
                        user_id=user_id,
                        phase_id=phase_id,
                        interaction_kind=interaction_kind,
                        interaction_data=interaction_data,
                        from_cache=from_cache,
                        time_spent_ms=time_spent_ms,
                    )
                )
                await session.commit()
            return True
        except Exception as e:
            logger.debug("Interaction logging skipped: %s", str(e)[:100])
            return False

"""
ProcessedEvent repository.

Idempotency lookups for qualifying events.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.processed_event import ProcessedEvent
from autopool.repositories.base import BaseRepository


class ProcessedEventRepository(BaseRepository[ProcessedEvent]):
    """ProcessedEvent repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize processed event repository."""
        super().__init__(ProcessedEvent, session)

    async def get_by_key(self, event_key: str) -> ProcessedEvent | None:
        """Get processed event by idempotency key."""
        return await self.get_by(event_key=event_key)

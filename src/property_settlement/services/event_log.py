"""Event log: the append-only timeline of a transaction.

Every lifecycle transition, condition satisfaction and deposit payment
writes one entry here. Entries are never updated or deleted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from property_settlement.infrastructure.database.repositories import EventRepository
from property_settlement.logging_config import get_logger
from property_settlement.services.base import ServiceBase
from property_settlement.services.context import resolve_actor

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from property_settlement.domain.enums import TransactionEventType
    from property_settlement.infrastructure.database.orm_models import (
        Transaction,
        TransactionEvent,
    )
    from property_settlement.services.base import Clock

logger = get_logger(__name__)


class EventLog(ServiceBase):
    """Appends and reads transaction timeline entries."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        super().__init__(session, clock)
        self._repo = EventRepository(session)

    async def log_event(
        self,
        transaction: Transaction,
        event_type: TransactionEventType,
        title: str,
        description: str | None = None,
        metadata: dict | None = None,
        actor: uuid.UUID | None = None,
    ) -> TransactionEvent:
        """Append an entry stamped with the current instant and acting party.

        ``actor`` falls back to the party bound with ``bind_actor``; with
        neither, the entry is a system event.
        """
        actor_id = resolve_actor(actor)
        evt = await self._repo.record(
            transaction_id=transaction.id,
            event_type=event_type,
            title=title,
            occurred_at=self.now(),
            description=description,
            metadata=metadata,
            actor_id=actor_id,
        )
        logger.debug(
            "transaction_event.logged",
            transaction_id=str(transaction.id),
            event_type=event_type.value,
            actor_id=str(actor_id) if actor_id else None,
        )
        return evt

    async def timeline(self, transaction_id: uuid.UUID) -> list[TransactionEvent]:
        return await self._repo.get_by_transaction(transaction_id)

    async def milestones(self, transaction_id: uuid.UUID) -> list[TransactionEvent]:
        """Timeline entries that mark a phase boundary (exchange, settlement, ...)."""
        return [evt for evt in await self.timeline(transaction_id) if evt.is_milestone]

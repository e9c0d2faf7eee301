"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Status changes go through compare-and-set UPDATEs: the row only changes if
it is still in one of the expected source states, and the caller learns from
the row count whether it won. On success the new values are copied onto any
instance of the row already held by the session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key

from property_settlement.domain.enums import (
    ACTIVE_OFFER_STATUSES,
    TERMINAL_TRANSACTION_STATUSES,
    PropertyStatus,
    TransactionStatus,
)
from property_settlement.infrastructure.database.orm_models import (
    Offer,
    Property,
    Transaction,
    TransactionEvent,
    TransactionMilestone,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from property_settlement.domain.enums import (
        MilestoneType,
        OfferStatus,
        TransactionEventType,
    )


def _values(statuses: Iterable[str]) -> list[str]:
    return [str(s) for s in statuses]


class _CompareAndSet:
    """Shared compare-and-set UPDATE for repositories that guard a status column."""

    model: type

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _compare_and_set(
        self, row_id: uuid.UUID, criteria: Iterable[Any], values: dict[str, Any]
    ) -> bool:
        result = await self._session.execute(
            update(self.model)
            .where(self.model.id == row_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        held = self._session.identity_map.get(identity_key(self.model, row_id))
        if held is not None:
            for key, value in values.items():
                set_committed_value(held, key, value)
        return True


class PropertyRepository(_CompareAndSet):
    """Data access for the listing projection. Satisfies PropertyGateway."""

    model = Property

    async def create(self, prop: Property) -> Property:
        self._session.add(prop)
        await self._session.flush()
        return prop

    async def get_by_id(self, property_id: uuid.UUID) -> Property | None:
        result = await self._session.execute(
            select(Property).where(Property.id == property_id)
        )
        return result.scalar_one_or_none()

    async def is_offerable(self, property_id: uuid.UUID) -> bool:
        prop = await self.get_by_id(property_id)
        return prop is not None and prop.is_offerable

    async def mark_under_offer(self, property_id: uuid.UUID, at: datetime) -> bool:
        """Claim an offerable listing. Only one concurrent caller can win."""
        return await self._compare_and_set(
            property_id,
            [
                Property.status == PropertyStatus.ACTIVE.value,
                Property.price_hidden.is_(False),
            ],
            {"status": PropertyStatus.UNDER_OFFER.value, "under_offer_at": at},
        )

    async def mark_sold(self, property_id: uuid.UUID, price_cents: int, at: datetime) -> bool:
        return await self._compare_and_set(
            property_id,
            [
                Property.status.in_(
                    _values([PropertyStatus.ACTIVE, PropertyStatus.UNDER_OFFER])
                )
            ],
            {"status": PropertyStatus.SOLD.value, "price_cents": price_cents, "sold_at": at},
        )

    async def reactivate(self, property_id: uuid.UUID) -> bool:
        """Return an under-offer listing to active; False if it was not under offer."""
        return await self._compare_and_set(
            property_id,
            [Property.status == PropertyStatus.UNDER_OFFER.value],
            {"status": PropertyStatus.ACTIVE.value, "under_offer_at": None},
        )


class OfferRepository(_CompareAndSet):
    """Data access for offers and counter-offers."""

    model = Offer

    async def create(self, offer: Offer) -> Offer:
        self._session.add(offer)
        await self._session.flush()
        return offer

    async def get_by_id(self, offer_id: uuid.UUID) -> Offer | None:
        result = await self._session.execute(select(Offer).where(Offer.id == offer_id))
        return result.scalar_one_or_none()

    async def get_by_property(self, property_id: uuid.UUID) -> list[Offer]:
        result = await self._session.execute(
            select(Offer)
            .where(Offer.property_id == property_id)
            .order_by(Offer.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_counter_offers(self, offer_id: uuid.UUID) -> list[Offer]:
        """Direct counter-proposals made in response to ``offer_id``."""
        result = await self._session.execute(
            select(Offer)
            .where(Offer.parent_offer_id == offer_id)
            .order_by(Offer.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_expired_unprocessed(self, now: datetime) -> list[Offer]:
        """Active offers whose expiry instant has passed."""
        result = await self._session.execute(
            select(Offer)
            .where(
                Offer.status.in_(_values(ACTIVE_OFFER_STATUSES)),
                Offer.expires_at.is_not(None),
                Offer.expires_at < now,
            )
            .order_by(Offer.expires_at.asc())
        )
        return list(result.scalars().all())

    async def transition(
        self,
        offer: Offer,
        expected: OfferStatus,
        new_status: str,
        **values: Any,
    ) -> bool:
        """Compare-and-set the offer's status (call AFTER state machine validation).

        Returns False when the row no longer holds ``expected``, meaning a
        concurrent request moved it first.
        """
        return await self._compare_and_set(
            offer.id,
            [Offer.status == expected.value],
            {"status": new_status, **values},
        )


class TransactionRepository(_CompareAndSet):
    """Data access for sale transactions."""

    model = Transaction

    async def create(self, txn: Transaction) -> Transaction:
        self._session.add(txn)
        await self._session.flush()
        return txn

    async def get_by_id(self, transaction_id: uuid.UUID) -> Transaction | None:
        result = await self._session.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def get_by_offer(self, offer_id: uuid.UUID) -> Transaction | None:
        result = await self._session.execute(
            select(Transaction).where(Transaction.offer_id == offer_id)
        )
        return result.scalar_one_or_none()

    async def count_for_offer(self, offer_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.offer_id == offer_id)
        )
        return int(result.scalar_one())

    async def get_by_status(self, status: TransactionStatus) -> list[Transaction]:
        result = await self._session.execute(
            select(Transaction)
            .where(Transaction.status == status.value)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_cooling_off_elapsed(self, now: datetime) -> list[Transaction]:
        """Transactions still in cooling-off whose expiry has passed."""
        result = await self._session.execute(
            select(Transaction)
            .where(
                Transaction.status == TransactionStatus.COOLING_OFF.value,
                Transaction.cooling_off_ends_at.is_not(None),
                Transaction.cooling_off_ends_at < now,
            )
            .order_by(Transaction.cooling_off_ends_at.asc())
        )
        return list(result.scalars().all())

    async def transition(
        self,
        txn: Transaction,
        expected: TransactionStatus,
        new_status: str,
        **values: Any,
    ) -> bool:
        """Compare-and-set the transaction's phase (call AFTER state machine validation)."""
        return await self._compare_and_set(
            txn.id,
            [Transaction.status == expected.value],
            {"status": new_status, **values},
        )

    async def mark_condition(
        self, txn: Transaction, flag: str, stamp: str, at: datetime
    ) -> bool:
        """Set a condition flag once. False if it was already set or the sale closed."""
        return await self._compare_and_set(
            txn.id,
            [
                getattr(Transaction, flag).is_(False),
                Transaction.status.not_in(_values(TERMINAL_TRANSACTION_STATUSES)),
            ],
            {flag: True, stamp: at},
        )

    async def add_deposit_payment(self, txn: Transaction, amount_cents: int) -> int | None:
        """Add to the paid deposit in the database and return the new total.

        The increment happens in SQL so concurrent payments accumulate.
        Returns None when the transaction is no longer active.
        """
        result = await self._session.execute(
            update(Transaction)
            .where(
                Transaction.id == txn.id,
                Transaction.status.not_in(_values(TERMINAL_TRANSACTION_STATUSES)),
            )
            .values(deposit_paid_cents=Transaction.deposit_paid_cents + amount_cents)
            .returning(Transaction.deposit_paid_cents)
            .execution_options(synchronize_session=False)
        )
        total = result.scalar_one_or_none()
        if total is not None:
            set_committed_value(txn, "deposit_paid_cents", total)
        return total

    async def update_fields(self, txn: Transaction, **values: Any) -> Transaction:
        """Write non-status fields (condition flags, deposit, conveyancers)."""
        for key, value in values.items():
            setattr(txn, key, value)
        await self._session.flush()
        return txn


class EventRepository:
    """Data access for the append-only transaction timeline."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        transaction_id: uuid.UUID,
        event_type: TransactionEventType,
        title: str,
        occurred_at: datetime,
        description: str | None = None,
        metadata: dict | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> TransactionEvent:
        """Append a new timeline event. This is the ONLY write operation allowed."""
        result = await self._session.execute(
            select(func.coalesce(func.max(TransactionEvent.sequence), 0)).where(
                TransactionEvent.transaction_id == transaction_id
            )
        )
        evt = TransactionEvent(
            transaction_id=transaction_id,
            event_type=event_type.value,
            title=title,
            description=description,
            metadata_json=dict(metadata or {}),
            actor_id=actor_id,
            occurred_at=occurred_at,
            sequence=int(result.scalar_one()) + 1,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_transaction(self, transaction_id: uuid.UUID) -> list[TransactionEvent]:
        """Fetch all events for a transaction in the order they were logged."""
        result = await self._session.execute(
            select(TransactionEvent)
            .where(TransactionEvent.transaction_id == transaction_id)
            .order_by(TransactionEvent.sequence.asc())
        )
        return list(result.scalars().all())


class MilestoneRepository(_CompareAndSet):
    """Data access for transaction milestones."""

    model = TransactionMilestone

    async def create_many(
        self, milestones: list[TransactionMilestone]
    ) -> list[TransactionMilestone]:
        self._session.add_all(milestones)
        await self._session.flush()
        return milestones

    async def get_by_transaction(
        self, transaction_id: uuid.UUID
    ) -> list[TransactionMilestone]:
        result = await self._session.execute(
            select(TransactionMilestone)
            .where(TransactionMilestone.transaction_id == transaction_id)
            .order_by(TransactionMilestone.position.asc())
        )
        return list(result.scalars().all())

    async def get(
        self, transaction_id: uuid.UUID, milestone_type: MilestoneType
    ) -> TransactionMilestone | None:
        result = await self._session.execute(
            select(TransactionMilestone).where(
                TransactionMilestone.transaction_id == transaction_id,
                TransactionMilestone.milestone_type == milestone_type.value,
            )
        )
        return result.scalar_one_or_none()

    async def mark_completed(
        self,
        milestone: TransactionMilestone,
        completed_at: datetime,
        completed_by_id: uuid.UUID | None = None,
    ) -> bool:
        """Set completion once. Returns False if it was already completed."""
        return await self._compare_and_set(
            milestone.id,
            [TransactionMilestone.completed_at.is_(None)],
            {"completed_at": completed_at, "completed_by_id": completed_by_id},
        )

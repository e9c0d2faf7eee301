"""Milestone Service: the dual-party progress checklist of a transaction.

Each transaction gets the same twelve milestones when it is created.
Milestones are independent of the state machine: some are completed
automatically as the lifecycle advances, the rest by either party.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from property_settlement.domain.enums import MilestoneType, Visibility
from property_settlement.domain.results import OperationResult
from property_settlement.infrastructure.database.orm_models import TransactionMilestone
from property_settlement.infrastructure.database.repositories import MilestoneRepository
from property_settlement.logging_config import get_logger
from property_settlement.services.base import ServiceBase
from property_settlement.services.context import resolve_actor

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from property_settlement.infrastructure.database.orm_models import Transaction
    from property_settlement.services.base import Clock

logger = get_logger(__name__)

STANDARD_MILESTONES: tuple[tuple[MilestoneType, str, Visibility], ...] = (
    (MilestoneType.CONTRACT_PREPARED, "Contract Prepared", Visibility.SELLER),
    (MilestoneType.OFFER_ACCEPTED, "Offer Accepted", Visibility.BOTH),
    (MilestoneType.FINANCE_APPROVED, "Finance Approved", Visibility.BOTH),
    (MilestoneType.BUILDING_INSPECTION_PASSED, "Building Inspection Passed", Visibility.BOTH),
    (MilestoneType.PEST_INSPECTION_PASSED, "Pest Inspection Passed", Visibility.BOTH),
    (MilestoneType.CONDITIONS_SATISFIED, "All Conditions Satisfied", Visibility.BOTH),
    (MilestoneType.DEPOSIT_PAID, "Deposit Paid", Visibility.BOTH),
    (MilestoneType.COOLING_OFF_COMPLETE, "Cooling-Off Period Complete", Visibility.BOTH),
    (MilestoneType.SETTLEMENT_DATE_CONFIRMED, "Settlement Date Confirmed", Visibility.BOTH),
    (
        MilestoneType.PRE_SETTLEMENT_INSPECTION,
        "Pre-Settlement Inspection Scheduled",
        Visibility.BOTH,
    ),
    (MilestoneType.KEYS_READY, "Keys Ready for Handover", Visibility.SELLER),
    (MilestoneType.SETTLEMENT_COMPLETE, "Settlement Complete", Visibility.BOTH),
)


class MilestoneService(ServiceBase):
    """Creates, completes and reports on transaction milestones."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        super().__init__(session, clock)
        self._repo = MilestoneRepository(session)

    async def create_standard_milestones(
        self, transaction: Transaction
    ) -> list[TransactionMilestone]:
        milestones = [
            TransactionMilestone(
                transaction_id=transaction.id,
                milestone_type=milestone_type.value,
                title=title,
                visible_to=visible_to.value,
                position=position,
            )
            for position, (milestone_type, title, visible_to) in enumerate(STANDARD_MILESTONES)
        ]
        return await self._repo.create_many(milestones)

    async def complete(
        self,
        transaction_id: uuid.UUID,
        milestone_type: MilestoneType,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Mark a milestone done. A milestone can only be completed once."""
        milestone = await self._repo.get(transaction_id, milestone_type)
        if milestone is None:
            return OperationResult.failure(f"No {milestone_type.value} milestone on transaction")
        if not await self._repo.mark_completed(milestone, self.now(), resolve_actor(actor)):
            return OperationResult.failure(f"Milestone {milestone_type.value} already completed")

        logger.info(
            "milestone.completed",
            transaction_id=str(transaction_id),
            milestone=milestone_type.value,
        )
        return OperationResult.success(milestone)

    async def for_transaction(self, transaction_id: uuid.UUID) -> list[TransactionMilestone]:
        return await self._repo.get_by_transaction(transaction_id)

    async def visible_to(
        self, transaction: Transaction, party_id: uuid.UUID
    ) -> list[TransactionMilestone]:
        """Milestones the given party may see; strangers to the sale see none."""
        if party_id == transaction.buyer_id:
            side = Visibility.BUYER
        elif party_id == transaction.seller_id:
            side = Visibility.SELLER
        else:
            return []
        milestones = await self.for_transaction(transaction.id)
        return [m for m in milestones if Visibility(m.visible_to).includes(side)]

    async def completion_percentage(self, transaction_id: uuid.UUID) -> int:
        milestones = await self.for_transaction(transaction_id)
        if not milestones:
            return 0
        done = sum(1 for m in milestones if m.is_completed)
        return round(done / len(milestones) * 100)

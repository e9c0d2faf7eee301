"""Transaction Service: the exchange-to-settlement lifecycle.

This is the core business logic layer that coordinates between:
    - Domain state machine (TransactionStateMachine transition guard)
    - Condition gate (which negotiated conditions still block progress)
    - Repositories (compare-and-set phase changes)
    - Event log and milestones (every transition leaves a trace)

Every mutating call either commits its whole effect (phase, timestamps,
timeline entry, milestone, listing update) or none of it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from property_settlement.config import Settings, get_settings
from property_settlement.domain.conditions import ConditionGate
from property_settlement.domain.cooling_off import cooling_off_ends_at
from property_settlement.domain.enums import (
    ConveyancerSide,
    MilestoneType,
    TransactionEventType,
    TransactionStatus,
)
from property_settlement.domain.exceptions import (
    InvalidAmountError,
    OfferNotFoundError,
    PropertyNotFoundError,
    TransactionNotFoundError,
)
from property_settlement.domain.results import OperationResult
from property_settlement.domain.state_machine import (
    TransactionStateMachine,
    attempt_transition,
)
from property_settlement.infrastructure.database.repositories import (
    OfferRepository,
    PropertyRepository,
    TransactionRepository,
)
from property_settlement.logging_config import get_logger
from property_settlement.services.base import GuardFailure, ServiceBase
from property_settlement.services.event_log import EventLog
from property_settlement.services.milestone_service import MilestoneService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Awaitable, Callable
    from datetime import date, datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from property_settlement.infrastructure.database.orm_models import (
        Offer,
        Transaction,
    )
    from property_settlement.services.base import Clock

logger = get_logger(__name__)

DEFAULT_RESCIND_REASON = "Buyer exercised cooling-off rights"

# (flag column, timestamp column, timeline event, milestone, title)
_CONDITIONS = {
    "finance": (
        "finance_approved",
        "finance_approved_at",
        TransactionEventType.FINANCE_APPROVED,
        MilestoneType.FINANCE_APPROVED,
        "Finance approved",
    ),
    "building_inspection": (
        "building_inspection_passed",
        "building_inspection_at",
        TransactionEventType.BUILDING_INSPECTION_PASSED,
        MilestoneType.BUILDING_INSPECTION_PASSED,
        "Building inspection passed",
    ),
    "pest_inspection": (
        "pest_inspection_passed",
        "pest_inspection_at",
        TransactionEventType.PEST_INSPECTION_PASSED,
        MilestoneType.PEST_INSPECTION_PASSED,
        "Pest inspection passed",
    ),
}


class TransactionService(ServiceBase):
    """Drives a sale transaction from pending to settled or fallen through."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._settings = settings or get_settings()
        self._repo = TransactionRepository(session)
        self._offer_repo = OfferRepository(session)
        self._property_repo = PropertyRepository(session)
        self._events = EventLog(session, clock)
        self._milestones = MilestoneService(session, clock)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def exchange(
        self,
        transaction_id: uuid.UUID,
        exchange_date: date | None = None,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Record the exchange of contracts. Defaults to today in the jurisdiction."""
        txn = await self._get_or_raise(transaction_id)
        exchange_date = exchange_date or self._today()
        return await self._advance(
            txn,
            "exchange",
            TransactionEventType.EXCHANGED,
            "Contracts exchanged",
            actor=actor,
            metadata={"exchange_date": exchange_date.isoformat()},
            values={"exchange_date": exchange_date},
        )

    async def start_cooling_off(
        self,
        transaction_id: uuid.UUID,
        ends_at: datetime | None = None,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Open the cooling-off window.

        Without ``ends_at`` the expiry is the end of the configured number of
        business days after the exchange date.
        """
        txn = await self._get_or_raise(transaction_id)
        if ends_at is None:
            ends_at = cooling_off_ends_at(
                txn.exchange_date or self._today(),
                self._settings.cooling_off_business_days,
                tz=self._settings.jurisdiction_tz,
            )
        return await self._advance(
            txn,
            "start_cooling_off",
            TransactionEventType.COOLING_OFF_STARTED,
            "Cooling-off period started",
            actor=actor,
            metadata={"ends_at": ends_at.isoformat()},
            values={"cooling_off_ends_at": ends_at},
        )

    async def go_unconditional(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        txn = await self._get_or_raise(transaction_id)
        return await self._go_unconditional(txn, actor)

    async def start_settling(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        """Begin settlement. Refused while any negotiated condition is outstanding."""
        txn = await self._get_or_raise(transaction_id)
        return await self._advance(
            txn,
            "start_settling",
            TransactionEventType.SETTLING,
            "Settlement in progress",
            actor=actor,
        )

    async def settle(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        """Complete the sale: the listing is marked sold at the agreed price."""
        txn = await self._get_or_raise(transaction_id)
        prop = await self._property_repo.get_by_id(txn.property_id)
        if prop is None:
            raise PropertyNotFoundError(str(txn.property_id))
        now = self.now()

        async def _on_settled() -> None:
            if not await self._property_repo.mark_sold(prop.id, txn.sale_price_cents, now):
                raise GuardFailure(f"Property cannot be marked sold from {prop.status}")
            await self._milestones.complete(txn.id, MilestoneType.SETTLEMENT_COMPLETE, actor)

        return await self._advance(
            txn,
            "settle",
            TransactionEventType.SETTLED,
            "Settlement complete",
            actor=actor,
            metadata={"sale_price_cents": txn.sale_price_cents},
            values={"settled_at": now},
            side_effects=_on_settled,
            records=(prop,),
        )

    async def fall_through(
        self,
        transaction_id: uuid.UUID,
        reason: str,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Abandon the sale. An under-offer listing goes back on the market."""
        txn = await self._get_or_raise(transaction_id)
        return await self._fall_through(txn, reason, actor)

    async def rescind(
        self,
        transaction_id: uuid.UUID,
        reason: str = DEFAULT_RESCIND_REASON,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Buyer withdrawal inside the cooling-off window."""
        txn = await self._get_or_raise(transaction_id)
        if not txn.can_rescind(self.now()):
            logger.info(
                "transaction.rescind_refused",
                transaction_id=str(txn.id),
                status=txn.status,
            )
            return OperationResult.failure("Cooling-off period is not in effect")
        return await self._fall_through(txn, reason, actor)

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    async def approve_finance(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        return await self._satisfy(transaction_id, "finance", actor)

    async def pass_building_inspection(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        return await self._satisfy(transaction_id, "building_inspection", actor)

    async def pass_pest_inspection(
        self, transaction_id: uuid.UUID, actor: uuid.UUID | None = None
    ) -> OperationResult:
        return await self._satisfy(transaction_id, "pest_inspection", actor)

    async def condition_gate(self, transaction_id: uuid.UUID) -> ConditionGate:
        txn = await self._get_or_raise(transaction_id)
        return ConditionGate.for_transaction(await self._offer_for(txn), txn)

    async def all_conditions_satisfied(self, transaction_id: uuid.UUID) -> bool:
        return (await self.condition_gate(transaction_id)).all_satisfied

    async def advance_elapsed_cooling_off(
        self, transaction_id: uuid.UUID
    ) -> OperationResult:
        """Move a transaction out of an elapsed cooling-off once conditions are met.

        Used by the periodic sweep; a no-op failure when the window is still
        open or a condition is outstanding.
        """
        txn = await self._get_or_raise(transaction_id)
        return await self._auto_advance(txn, actor=None)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def record_deposit_payment(
        self,
        transaction_id: uuid.UUID,
        amount_cents: int,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Add a (possibly partial) deposit payment.

        Raises:
            InvalidAmountError: If ``amount_cents`` is not positive.
        """
        if amount_cents <= 0:
            raise InvalidAmountError("amount_cents", amount_cents)
        txn = await self._get_or_raise(transaction_id)
        if not txn.is_active:
            return self._closed(txn, "record_deposit_payment")

        async def _pay() -> Transaction:
            total = await self._repo.add_deposit_payment(txn, amount_cents)
            if total is None:
                raise GuardFailure("Transaction was closed by another request")
            await self._events.log_event(
                txn,
                TransactionEventType.DEPOSIT_PAID,
                "Deposit payment received",
                metadata={"amount_cents": amount_cents, "total_paid_cents": total},
                actor=actor,
            )
            if txn.deposit_cents and not txn.deposit_outstanding:
                await self._milestones.complete(txn.id, MilestoneType.DEPOSIT_PAID, actor)
            return txn

        result = await self.run_atomic(_pay, txn)
        if not result.ok:
            return result
        logger.info(
            "transaction.deposit_paid",
            transaction_id=str(txn.id),
            amount_cents=amount_cents,
            remaining_cents=txn.deposit_remaining_cents,
        )
        return result

    async def assign_conveyancer(
        self,
        transaction_id: uuid.UUID,
        side: ConveyancerSide,
        conveyancer_id: uuid.UUID,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        txn = await self._get_or_raise(transaction_id)
        if not txn.is_active:
            return self._closed(txn, "assign_conveyancer")
        side = ConveyancerSide(side)
        field = f"{side.value}_conveyancer_id"

        async def _assign() -> Transaction:
            await self._repo.update_fields(txn, **{field: conveyancer_id})
            await self._events.log_event(
                txn,
                TransactionEventType.CONVEYANCER_ASSIGNED,
                f"{side.value.capitalize()} conveyancer assigned",
                metadata={"side": side.value, "conveyancer_id": str(conveyancer_id)},
                actor=actor,
            )
            return txn

        return await self.run_atomic(_assign, txn)

    async def log_note(
        self,
        transaction_id: uuid.UUID,
        title: str,
        description: str | None = None,
        metadata: dict | None = None,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Append a free-form timeline entry. Does not touch the lifecycle."""
        txn = await self._get_or_raise(transaction_id)
        evt = await self._events.log_event(
            txn,
            TransactionEventType.CUSTOM,
            title,
            description=description,
            metadata=metadata,
            actor=actor,
        )
        return OperationResult.success(evt)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        return await self._get_or_raise(transaction_id)

    async def get_by_offer(self, offer_id: uuid.UUID) -> Transaction | None:
        return await self._repo.get_by_offer(offer_id)

    async def in_status(self, status: TransactionStatus) -> list[Transaction]:
        return await self._repo.get_by_status(status)

    async def allowed_events(self, transaction_id: uuid.UUID) -> list[str]:
        txn = await self._get_or_raise(transaction_id)
        return self._machine(txn, await self._offer_for(txn)).get_allowed_events()

    async def get_status(self, transaction_id: uuid.UUID) -> dict:
        """Phase plus the derived predicates a dashboard needs."""
        txn = await self._get_or_raise(transaction_id)
        offer = await self._offer_for(txn)
        gate = ConditionGate.for_transaction(offer, txn)
        today = self._today()
        return {
            "transaction_id": str(txn.id),
            "status": txn.status,
            "active": txn.is_active,
            "can_rescind": txn.can_rescind(self.now()),
            "overdue": txn.is_overdue(today),
            "days_until_settlement": txn.days_until_settlement(today),
            "outstanding_conditions": [c.value for c in gate.outstanding],
            "deposit_outstanding": txn.deposit_outstanding,
            "deposit_remaining_cents": txn.deposit_remaining_cents,
            "milestones_complete_pct": await self._milestones.completion_percentage(txn.id),
            "allowed_events": self._machine(txn, offer).get_allowed_events(),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_or_raise(self, transaction_id: uuid.UUID) -> Transaction:
        txn = await self._repo.get_by_id(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn

    async def _offer_for(self, txn: Transaction) -> Offer:
        offer = await self._offer_repo.get_by_id(txn.offer_id)
        if offer is None:
            raise OfferNotFoundError(str(txn.offer_id))
        return offer

    def _today(self) -> date:
        return self.now().astimezone(self._settings.jurisdiction_tz).date()

    @staticmethod
    def _machine(txn: Transaction, offer: Offer) -> TransactionStateMachine:
        return TransactionStateMachine(
            txn.status,
            cooling_off_waived=bool(offer.cooling_off_waived),
            conditions_satisfied=ConditionGate.for_transaction(offer, txn).all_satisfied,
        )

    def _closed(self, txn: Transaction, operation: str) -> OperationResult:
        logger.info(
            "transaction.closed_refused",
            transaction_id=str(txn.id),
            status=txn.status,
            attempted=operation,
        )
        return OperationResult.failure(f"Transaction is {txn.status}")

    async def _advance(
        self,
        txn: Transaction,
        event_name: str,
        event_type: TransactionEventType,
        title: str,
        *,
        actor: uuid.UUID | None = None,
        metadata: dict | None = None,
        values: dict | None = None,
        side_effects: Callable[[], Awaitable[None]] | None = None,
        records: tuple = (),
    ) -> OperationResult:
        """Guard, then apply one phase change with its side effects atomically.

        Steps:
            1. Build the state machine at the current phase and fire the event
            2. Compare-and-set the new phase (a concurrent change loses cleanly)
            3. Run side effects (listing, milestones)
            4. Append the timeline entry
        """
        offer = await self._offer_for(txn)
        old_status = TransactionStatus(txn.status)
        new_status = attempt_transition(self._machine(txn, offer), event_name)
        if new_status is None:
            logger.info(
                "transaction.transition_refused",
                transaction_id=str(txn.id),
                status=old_status.value,
                attempted=event_name,
            )
            return OperationResult.failure(self._refusal(txn, offer, event_name))

        async def _apply() -> Transaction:
            if not await self._repo.transition(txn, old_status, new_status, **(values or {})):
                raise GuardFailure(
                    f"Transaction left {old_status.value} before {event_name} applied"
                )
            if side_effects is not None:
                await side_effects()
            await self._events.log_event(txn, event_type, title, metadata=metadata, actor=actor)
            return txn

        result = await self.run_atomic(_apply, txn, *records)
        if result.ok:
            logger.info(
                f"transaction.{new_status}",
                transaction_id=str(txn.id),
                old_status=old_status.value,
            )
        else:
            logger.info(
                "transaction.transition_aborted",
                transaction_id=str(txn.id),
                attempted=event_name,
                reason=result.reason,
            )
        return result

    def _refusal(self, txn: Transaction, offer: Offer, event_name: str) -> str:
        gate = ConditionGate.for_transaction(offer, txn)
        if (
            event_name == "start_settling"
            and txn.status == TransactionStatus.UNCONDITIONAL
            and not gate.all_satisfied
        ):
            outstanding = ", ".join(c.value for c in gate.outstanding)
            return f"Outstanding conditions: {outstanding}"
        if (
            event_name == "go_unconditional"
            and txn.status == TransactionStatus.EXCHANGED
            and not offer.cooling_off_waived
        ):
            return "Cooling-off has not been waived; start cooling-off first"
        return f"Cannot {event_name} a transaction that is {txn.status}"

    async def _go_unconditional(
        self,
        txn: Transaction,
        actor: uuid.UUID | None,
        metadata: dict | None = None,
    ) -> OperationResult:
        leaving_cooling_off = txn.status == TransactionStatus.COOLING_OFF

        async def _on_unconditional() -> None:
            if leaving_cooling_off:
                await self._events.log_event(
                    txn,
                    TransactionEventType.COOLING_OFF_ENDED,
                    "Cooling-off period ended",
                    metadata=metadata,
                    actor=actor,
                )
                await self._milestones.complete(
                    txn.id, MilestoneType.COOLING_OFF_COMPLETE, actor
                )

        return await self._advance(
            txn,
            "go_unconditional",
            TransactionEventType.UNCONDITIONAL,
            "Contract unconditional",
            actor=actor,
            metadata=metadata,
            side_effects=_on_unconditional,
        )

    async def _fall_through(
        self, txn: Transaction, reason: str, actor: uuid.UUID | None
    ) -> OperationResult:
        prop = await self._property_repo.get_by_id(txn.property_id)
        records = (prop,) if prop is not None else ()

        async def _on_fallen_through() -> None:
            if prop is not None:
                await self._property_repo.reactivate(prop.id)

        return await self._advance(
            txn,
            "fall_through",
            TransactionEventType.FALLEN_THROUGH,
            "Transaction fell through",
            actor=actor,
            metadata={"reason": reason},
            values={"fallen_through_at": self.now(), "fallen_through_reason": reason},
            side_effects=_on_fallen_through,
            records=records,
        )

    async def _satisfy(
        self, transaction_id: uuid.UUID, condition: str, actor: uuid.UUID | None
    ) -> OperationResult:
        """Record a condition as met; idempotent when it already is.

        When the last outstanding condition is met on a transaction whose
        cooling-off window has already elapsed, the transaction moves on to
        ``unconditional`` in the same atomic unit.
        """
        flag, stamp, event_type, milestone, title = _CONDITIONS[condition]
        txn = await self._get_or_raise(transaction_id)
        if not txn.is_active:
            return self._closed(txn, f"satisfy_{condition}")
        if getattr(txn, flag):
            return OperationResult.success(txn)

        now = self.now()

        async def _apply() -> Transaction:
            if not await self._repo.mark_condition(txn, flag, stamp, now):
                # Already set by a concurrent request, or the sale closed meanwhile
                await self._session.refresh(txn)
                if not txn.is_active:
                    raise GuardFailure(f"Transaction is {txn.status}")
                return txn
            await self._events.log_event(txn, event_type, title, actor=actor)
            await self._milestones.complete(txn.id, milestone, actor)
            if ConditionGate.for_transaction(await self._offer_for(txn), txn).all_satisfied:
                await self._milestones.complete(
                    txn.id, MilestoneType.CONDITIONS_SATISFIED, actor
                )
                await self._auto_advance(txn, actor)
            return txn

        result = await self.run_atomic(_apply, txn)
        logger.info(
            "transaction.condition_satisfied",
            transaction_id=str(txn.id),
            condition=condition,
            status=txn.status,
        )
        return result

    async def _auto_advance(
        self, txn: Transaction, actor: uuid.UUID | None
    ) -> OperationResult:
        if txn.status != TransactionStatus.COOLING_OFF:
            return OperationResult.failure("Transaction is not in cooling-off")
        if txn.cooling_off_ends_at is None or txn.cooling_off_ends_at >= self.now():
            return OperationResult.failure("Cooling-off period has not elapsed")
        gate = ConditionGate.for_transaction(await self._offer_for(txn), txn)
        if not gate.all_satisfied:
            outstanding = ", ".join(c.value for c in gate.outstanding)
            return OperationResult.failure(f"Outstanding conditions: {outstanding}")

        logger.info("transaction.auto_advance", transaction_id=str(txn.id))
        return await self._go_unconditional(txn, actor, metadata={"automatic": True})

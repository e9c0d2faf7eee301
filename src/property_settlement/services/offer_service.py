"""Offer Service: the offer ledger and counter-offer chain.

This is the application layer that coordinates between:
    - Domain state machine (OfferStateMachine transition guard)
    - Repositories (compare-and-set status updates)
    - The listing (claimed atomically when an offer is accepted)
    - Transaction creation, milestones and the event log on acceptance

Guard violations come back as a failed OperationResult. Broken data
invariants raise OfferValidationError before anything is written.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from property_settlement.config import Settings, get_settings
from property_settlement.domain.enums import (
    MilestoneType,
    OfferStatus,
    TransactionEventType,
)
from property_settlement.domain.exceptions import (
    NegotiationChainError,
    OfferNotFoundError,
    OfferValidationError,
    PropertyNotFoundError,
)
from property_settlement.domain.results import OperationResult
from property_settlement.domain.state_machine import OfferStateMachine, attempt_transition
from property_settlement.infrastructure.database.orm_models import Offer, Transaction
from property_settlement.infrastructure.database.repositories import (
    OfferRepository,
    PropertyRepository,
    TransactionRepository,
)
from property_settlement.logging_config import get_logger
from property_settlement.schemas.offer import CounterTerms, OfferDraft
from property_settlement.services.base import GuardFailure, ServiceBase
from property_settlement.services.event_log import EventLog
from property_settlement.services.milestone_service import MilestoneService
from property_settlement.services.notifier import LoggingNotifier, dispatch

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from property_settlement.domain.collaborators import Notifier
    from property_settlement.infrastructure.database.orm_models import Property
    from property_settlement.services.base import Clock

logger = get_logger(__name__)

_INHERITED_TERMS = (
    "finance_type",
    "settlement_days",
    "deposit_cents",
    "subject_to_finance",
    "subject_to_building_inspection",
    "subject_to_pest_inspection",
    "subject_to_valuation",
    "subject_to_sale_of_property",
    "other_conditions",
)


class OfferService(ServiceBase):
    """Manages the offer lifecycle from draft to a final answer."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._settings = settings or get_settings()
        self._notifier = notifier or LoggingNotifier()
        self._offer_repo = OfferRepository(session)
        self._property_repo = PropertyRepository(session)
        self._transaction_repo = TransactionRepository(session)
        self._events = EventLog(session, clock)
        self._milestones = MilestoneService(session, clock)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_offer(self, draft: OfferDraft) -> Offer:
        """Persist a new offer in ``draft``.

        Raises:
            PropertyNotFoundError: The property does not exist.
            OfferValidationError: The proposer owns the property, or the
                property is not accepting offers.
        """
        prop = await self._get_property_or_raise(draft.property_id)

        errors: dict[str, str] = {}
        if draft.proposing_party_id == prop.owner_id:
            errors["proposing_party"] = "cannot make an offer on their own property"
        if not prop.is_offerable:
            errors["property"] = "is not accepting offers"
        if errors:
            logger.info("offer.rejected_invalid", property_id=str(prop.id), errors=errors)
            raise OfferValidationError(errors)

        offer = Offer(
            property_id=prop.id,
            proposing_party_id=draft.proposing_party_id,
            proposing_entity_id=draft.proposing_entity_id,
            receiving_party_id=prop.owner_id,
            receiving_entity_id=prop.owner_entity_id,
            amount_cents=draft.amount_cents,
            currency=draft.currency or self._settings.default_currency,
            finance_type=draft.finance_type.value,
            finance_lender=draft.finance_lender,
            deposit_cents=draft.deposit_cents,
            settlement_days=draft.settlement_days,
            subject_to_finance=draft.subject_to_finance,
            subject_to_building_inspection=draft.subject_to_building_inspection,
            subject_to_pest_inspection=draft.subject_to_pest_inspection,
            subject_to_valuation=draft.subject_to_valuation,
            subject_to_sale_of_property=draft.subject_to_sale_of_property,
            other_conditions=draft.other_conditions,
            cooling_off_waived=draft.cooling_off_waived,
            status=OfferStatus.DRAFT.value,
        )
        offer = await self._offer_repo.create(offer)

        logger.info(
            "offer.created",
            offer_id=str(offer.id),
            property_id=str(prop.id),
            amount_cents=offer.amount_cents,
        )
        return offer

    # ------------------------------------------------------------------
    # Buyer-side transitions
    # ------------------------------------------------------------------

    async def submit(self, offer_id: uuid.UUID) -> OperationResult:
        """Send a draft to the receiving party. The offer is valid for a fixed window."""
        offer = await self._get_offer_or_raise(offer_id)
        now = self.now()
        result = await self._simple_transition(
            offer,
            "submit",
            submitted_at=now,
            expires_at=now + timedelta(days=self._settings.offer_validity_days),
        )
        if result.ok:
            await dispatch(self._notifier, "offer.received", self._payload(offer))
        return result

    async def mark_viewed(self, offer_id: uuid.UUID) -> OperationResult:
        offer = await self._get_offer_or_raise(offer_id)
        return await self._simple_transition(offer, "mark_viewed", viewed_at=self.now())

    async def withdraw(self, offer_id: uuid.UUID) -> OperationResult:
        offer = await self._get_offer_or_raise(offer_id)
        return await self._simple_transition(offer, "withdraw", withdrawn_at=self.now())

    async def expire(self, offer_id: uuid.UUID) -> OperationResult:
        """Close an active offer whose validity window has passed."""
        offer = await self._get_offer_or_raise(offer_id)
        now = self.now()
        if offer.is_active and (offer.expires_at is None or offer.expires_at >= now):
            return OperationResult.failure("Offer has not reached its expiry time")
        return await self._simple_transition(offer, "expire", expired_at=now)

    # ------------------------------------------------------------------
    # Receiver-side responses
    # ------------------------------------------------------------------

    async def reject(
        self, offer_id: uuid.UUID, seller_response: str | None = None
    ) -> OperationResult:
        offer = await self._get_offer_or_raise(offer_id)
        now = self.now()
        result = await self._simple_transition(
            offer,
            "reject",
            rejected_at=now,
            responded_at=now,
            seller_response=seller_response,
        )
        if result.ok:
            await dispatch(self._notifier, "offer.responded", self._payload(offer))
        return result

    async def accept(
        self,
        offer_id: uuid.UUID,
        seller_response: str | None = None,
        actor: uuid.UUID | None = None,
    ) -> OperationResult:
        """Accept an active offer and open its sale transaction.

        One atomic unit: the offer becomes ``accepted``, the listing goes
        under offer, and the Transaction is created with its milestones and
        opening timeline entry. If the listing has already been claimed by
        another acceptance, or anything fails, nothing is kept.

        Returns:
            OperationResult whose ``value`` is the new Transaction.
        """
        offer = await self._get_offer_or_raise(offer_id)
        old_status = OfferStatus(offer.status)
        new_status = self._guard(offer, "accept")
        if new_status is None:
            return self._refused(offer, "accept")

        prop = await self._get_property_or_raise(offer.property_id)
        now = self.now()

        async def _accept() -> Transaction:
            if not await self._offer_repo.transition(
                offer,
                old_status,
                new_status,
                accepted_at=now,
                responded_at=now,
                seller_response=seller_response,
            ):
                raise GuardFailure("Offer was answered by another request")
            if await self._transaction_repo.count_for_offer(offer.id):
                raise GuardFailure("Offer already has a transaction")
            if not await self._property_repo.mark_under_offer(prop.id, now):
                raise GuardFailure("Property is no longer accepting offers")

            buyer_id, buyer_entity_id = self.buyer_side(offer, prop)
            local_today = now.astimezone(self._settings.jurisdiction_tz).date()
            txn = await self._transaction_repo.create(
                Transaction(
                    property_id=prop.id,
                    offer_id=offer.id,
                    seller_id=prop.owner_id,
                    seller_entity_id=prop.owner_entity_id,
                    buyer_id=buyer_id,
                    buyer_entity_id=buyer_entity_id,
                    sale_price_cents=offer.amount_cents,
                    deposit_cents=offer.deposit_cents,
                    deposit_paid_cents=0,
                    settlement_date=local_today + timedelta(days=offer.settlement_days),
                )
            )
            await self._milestones.create_standard_milestones(txn)
            await self._milestones.complete(txn.id, MilestoneType.OFFER_ACCEPTED, actor)
            await self._events.log_event(
                txn,
                TransactionEventType.CREATED,
                "Offer accepted",
                metadata={
                    "offer_id": str(offer.id),
                    "sale_price_cents": offer.amount_cents,
                    "settlement_date": txn.settlement_date.isoformat(),
                },
                actor=actor,
            )
            return txn

        result = await self.run_atomic(_accept, offer, prop)
        if not result.ok:
            logger.info("offer.accept_refused", offer_id=str(offer.id), reason=result.reason)
            return result

        logger.info(
            "offer.accepted",
            offer_id=str(offer.id),
            transaction_id=str(result.value.id),
            sale_price_cents=offer.amount_cents,
        )
        await dispatch(self._notifier, "offer.responded", self._payload(offer))
        return result

    async def counter(
        self,
        offer_id: uuid.UUID,
        counter_amount_cents: int,
        terms: CounterTerms | None = None,
    ) -> OperationResult:
        """Answer an active offer with a counter-proposal.

        The original offer becomes ``countered`` and a new offer is created in
        ``submitted`` with the two parties swapped and its parent link pointing
        at the original. Unset ``terms`` are inherited from the original.

        Returns:
            OperationResult whose ``value`` is the new counter-offer.
        """
        if counter_amount_cents <= 0:
            raise OfferValidationError({"amount_cents": "must be greater than 0"})
        terms = terms or CounterTerms()

        offer = await self._get_offer_or_raise(offer_id)
        deposit_cents = terms.inherited("deposit_cents", offer.deposit_cents)
        if deposit_cents is not None and deposit_cents > counter_amount_cents:
            raise OfferValidationError({"deposit_cents": "cannot exceed the counter amount"})

        old_status = OfferStatus(offer.status)
        new_status = self._guard(offer, "counter")
        if new_status is None:
            return self._refused(offer, "counter")

        prop = await self._get_property_or_raise(offer.property_id)
        now = self.now()

        async def _counter() -> Offer:
            if not await self._offer_repo.transition(
                offer,
                old_status,
                new_status,
                responded_at=now,
                seller_response=terms.seller_response,
            ):
                raise GuardFailure("Offer was answered by another request")
            if not prop.is_offerable:
                raise GuardFailure("Property is no longer accepting offers")

            inherited = {
                field: terms.inherited(field, getattr(offer, field))
                for field in _INHERITED_TERMS
            }
            inherited["finance_type"] = str(inherited["finance_type"])
            return await self._offer_repo.create(
                Offer(
                    property_id=offer.property_id,
                    parent_offer_id=offer.id,
                    proposing_party_id=offer.receiving_party_id,
                    proposing_entity_id=offer.receiving_entity_id,
                    receiving_party_id=offer.proposing_party_id,
                    receiving_entity_id=offer.proposing_entity_id,
                    amount_cents=counter_amount_cents,
                    currency=offer.currency,
                    finance_lender=offer.finance_lender,
                    cooling_off_waived=offer.cooling_off_waived,
                    status=OfferStatus.SUBMITTED.value,
                    submitted_at=now,
                    expires_at=now + timedelta(days=self._settings.offer_validity_days),
                    **inherited,
                )
            )

        result = await self.run_atomic(_counter, offer, prop)
        if not result.ok:
            logger.info("offer.counter_refused", offer_id=str(offer.id), reason=result.reason)
            return result

        counter_offer = result.value
        logger.info(
            "offer.countered",
            offer_id=str(offer.id),
            counter_offer_id=str(counter_offer.id),
            amount_cents=counter_amount_cents,
        )
        await dispatch(self._notifier, "offer.responded", self._payload(offer))
        await dispatch(self._notifier, "offer.received", self._payload(counter_offer))
        return result

    # ------------------------------------------------------------------
    # Counter-offer chain
    # ------------------------------------------------------------------

    async def negotiation_history(self, offer_id: uuid.UUID) -> list[Offer]:
        """Every offer in the negotiation ``offer_id`` belongs to, oldest first."""
        offer = await self._get_offer_or_raise(offer_id)

        ancestors: list[Offer] = []
        seen: set[uuid.UUID] = set()
        current: Offer | None = offer
        while current is not None:
            if current.id in seen:
                raise NegotiationChainError(str(current.id))
            seen.add(current.id)
            ancestors.append(current)
            current = (
                await self._offer_repo.get_by_id(current.parent_offer_id)
                if current.parent_offer_id
                else None
            )

        chain = list(reversed(ancestors))
        tail = offer
        while children := await self._offer_repo.get_counter_offers(tail.id):
            tail = children[-1]
            if tail.id in seen:
                raise NegotiationChainError(str(tail.id))
            seen.add(tail.id)
            chain.append(tail)
        return chain

    async def counter_offers(self, offer_id: uuid.UUID) -> list[Offer]:
        return await self._offer_repo.get_counter_offers(offer_id)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_offer(self, offer_id: uuid.UUID) -> Offer:
        return await self._get_offer_or_raise(offer_id)

    async def offers_for_property(self, property_id: uuid.UUID) -> list[Offer]:
        return await self._offer_repo.get_by_property(property_id)

    async def get_status(self, offer_id: uuid.UUID) -> dict:
        """Offer status with the derived predicates the UI branches on."""
        offer = await self._get_offer_or_raise(offer_id)
        return {
            "offer_id": str(offer.id),
            "status": offer.status,
            "active": offer.is_active,
            "finalized": offer.is_finalized,
            "expired": offer.is_expired(self.now()),
            "has_conditions": offer.has_conditions,
            "conditions": offer.conditions_list,
            "allowed_events": OfferStateMachine(offer.status).get_allowed_events(),
        }

    @staticmethod
    def buyer_side(offer: Offer, prop: Property) -> tuple[uuid.UUID, uuid.UUID | None]:
        """The non-owner party of an offer (and their entity)."""
        if offer.proposing_party_id == prop.owner_id:
            return offer.receiving_party_id, offer.receiving_entity_id
        return offer.proposing_party_id, offer.proposing_entity_id

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_offer_or_raise(self, offer_id: uuid.UUID) -> Offer:
        offer = await self._offer_repo.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer

    async def _get_property_or_raise(self, property_id: uuid.UUID) -> Property:
        prop = await self._property_repo.get_by_id(property_id)
        if prop is None:
            raise PropertyNotFoundError(str(property_id))
        return prop

    def _guard(self, offer: Offer, event_name: str) -> str | None:
        return attempt_transition(OfferStateMachine(offer.status), event_name)

    def _refused(self, offer: Offer, event_name: str) -> OperationResult:
        logger.info(
            "offer.transition_refused",
            offer_id=str(offer.id),
            status=offer.status,
            attempted=event_name,
        )
        return OperationResult.failure(f"Cannot {event_name} an offer that is {offer.status}")

    async def _simple_transition(
        self, offer: Offer, event_name: str, **values: datetime | str | None
    ) -> OperationResult:
        """Guard, then compare-and-set a single-row status change."""
        old_status = OfferStatus(offer.status)
        new_status = self._guard(offer, event_name)
        if new_status is None:
            return self._refused(offer, event_name)

        if not await self._offer_repo.transition(offer, old_status, new_status, **values):
            logger.info("offer.transition_lost_race", offer_id=str(offer.id), attempted=event_name)
            return OperationResult.failure("Offer was changed by another request")

        logger.info(
            f"offer.{new_status}",
            offer_id=str(offer.id),
            old_status=old_status.value,
        )
        return OperationResult.success(offer)

    @staticmethod
    def _payload(offer: Offer) -> dict:
        return {
            "offer_id": str(offer.id),
            "property_id": str(offer.property_id),
            "recipient_id": str(offer.receiving_party_id),
            "status": offer.status,
            "amount_cents": offer.amount_cents,
        }

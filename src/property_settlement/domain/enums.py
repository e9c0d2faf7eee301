"""Domain enumerations for the settlement core.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy imports).
"""

from __future__ import annotations

import enum


class OfferStatus(enum.StrEnum):
    """Lifecycle states of an offer.

    Transitions are enforced by OfferStateMachine (domain/state_machine.py).
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    VIEWED = "viewed"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


ACTIVE_OFFER_STATUSES = frozenset({OfferStatus.SUBMITTED, OfferStatus.VIEWED})
FINALIZED_OFFER_STATUSES = frozenset(
    {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.WITHDRAWN, OfferStatus.EXPIRED}
)


class FinanceType(enum.StrEnum):
    CASH = "cash"
    PRE_APPROVED = "pre_approved"
    SUBJECT_TO_FINANCE = "subject_to_finance"


class TransactionStatus(enum.StrEnum):
    """Ordered phases of a sale transaction.

    ``settled`` and ``fallen_through`` are absorbing terminal states.
    """

    PENDING = "pending"
    EXCHANGED = "exchanged"
    COOLING_OFF = "cooling_off"
    UNCONDITIONAL = "unconditional"
    SETTLING = "settling"
    SETTLED = "settled"
    FALLEN_THROUGH = "fallen_through"


TERMINAL_TRANSACTION_STATUSES = frozenset(
    {TransactionStatus.SETTLED, TransactionStatus.FALLEN_THROUGH}
)


class TransactionEventType(enum.StrEnum):
    """Types of entries in the transaction timeline.

    Every lifecycle transition is recorded; leaving cooling-off also
    records ``cooling_off_ended`` ahead of ``unconditional``.
    """

    # Lifecycle events
    CREATED = "created"
    EXCHANGED = "exchanged"
    COOLING_OFF_STARTED = "cooling_off_started"
    COOLING_OFF_ENDED = "cooling_off_ended"
    UNCONDITIONAL = "unconditional"
    SETTLING = "settling"
    SETTLED = "settled"
    FALLEN_THROUGH = "fallen_through"

    # Condition events
    FINANCE_APPROVED = "finance_approved"
    BUILDING_INSPECTION_PASSED = "building_inspection_passed"
    PEST_INSPECTION_PASSED = "pest_inspection_passed"

    # Bookkeeping events
    DEPOSIT_PAID = "deposit_paid"
    DOCUMENT_UPLOADED = "document_uploaded"
    CONVEYANCER_ASSIGNED = "conveyancer_assigned"
    CUSTOM = "custom"

    @property
    def is_milestone(self) -> bool:
        return self in _TIMELINE_MILESTONES


_TIMELINE_MILESTONES = frozenset(
    {
        TransactionEventType.EXCHANGED,
        TransactionEventType.UNCONDITIONAL,
        TransactionEventType.SETTLED,
        TransactionEventType.FALLEN_THROUGH,
    }
)


class PropertyStatus(enum.StrEnum):
    """Listing statuses owned by the listing collaborator."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    ACTIVE = "active"
    UNDER_OFFER = "under_offer"
    SOLD = "sold"
    WITHDRAWN = "withdrawn"
    ARCHIVED = "archived"


class MilestoneType(enum.StrEnum):
    CONTRACT_PREPARED = "contract_prepared"
    OFFER_ACCEPTED = "offer_accepted"
    FINANCE_APPROVED = "finance_approved"
    BUILDING_INSPECTION_PASSED = "building_inspection_passed"
    PEST_INSPECTION_PASSED = "pest_inspection_passed"
    CONDITIONS_SATISFIED = "conditions_satisfied"
    DEPOSIT_PAID = "deposit_paid"
    COOLING_OFF_COMPLETE = "cooling_off_complete"
    SETTLEMENT_DATE_CONFIRMED = "settlement_date_confirmed"
    PRE_SETTLEMENT_INSPECTION = "pre_settlement_inspection"
    KEYS_READY = "keys_ready"
    SETTLEMENT_COMPLETE = "settlement_complete"


class Visibility(enum.StrEnum):
    """Which side of a transaction may see a milestone."""

    BUYER = "buyer"
    SELLER = "seller"
    BOTH = "both"

    def includes(self, side: Visibility) -> bool:
        return self is Visibility.BOTH or self is side


class ConveyancerSide(enum.StrEnum):
    BUYER = "buyer"
    SELLER = "seller"

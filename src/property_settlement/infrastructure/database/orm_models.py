"""SQLAlchemy 2.0 ORM models for the settlement core.

Five tables:
    1. properties             : Listing projection (status, price, owner) the
                                lifecycles read and update.
    2. offers                 : Offers and counter-offers on a property.
    3. transactions           : The binding sale created when an offer is accepted.
    4. transaction_events     : Append-only timeline of every transaction occurrence.
    5. transaction_milestones : Dual-party checklist, one row per milestone type.

Design decisions:
    - UUIDs as primary keys.
    - Integer cents for money (no floating point rounding errors).
    - JSON metadata on events (JSONB on PostgreSQL).
    - Timezone-aware datetimes on every backend, including SQLite.
    - CHECK constraints on status and amount columns.
    - transaction_events is append-only: no UPDATE or DELETE at the application level.
    - An offer's parent_offer_id is written once, when the counter is created.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from property_settlement.domain.enums import (
    ACTIVE_OFFER_STATUSES,
    FINALIZED_OFFER_STATUSES,
    TERMINAL_TRANSACTION_STATUSES,
    MilestoneType,
    OfferStatus,
    PropertyStatus,
    TransactionEventType,
    TransactionStatus,
    Visibility,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _in_list(column: str, values) -> str:  # noqa: ANN001
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class AwareDateTime(TypeDecorator):
    """DateTime that always hands back timezone-aware UTC values.

    SQLite drops tzinfo on the way in; values are normalised to UTC before
    binding and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


MetadataJSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. properties
# ---------------------------------------------------------------------------
class Property(Base):
    """The listing fields the settlement core depends on."""

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Party that owns the listing (the seller)",
    )
    owner_entity_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        default=None,
        comment="Entity the seller holds the property through",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PropertyStatus.ACTIVE.value,
    )
    price_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    under_offer_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", PropertyStatus), name="ck_property_valid_status"),
        Index("idx_property_status", "status"),
        Index("idx_property_owner", "owner_id"),
    )

    @property
    def is_offerable(self) -> bool:
        return self.status == PropertyStatus.ACTIVE and not self.price_hidden

    def __repr__(self) -> str:
        return f"<Property id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. offers
# ---------------------------------------------------------------------------
class Offer(Base):
    """A proposal to buy a property, or a counter-proposal to one.

    The proposing party made this offer; the receiving party answers it. On
    an original offer the receiver is the property owner; each counter-offer
    swaps the two.
    """

    __tablename__ = "offers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    parent_offer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("offers.id"),
        nullable=True,
        default=None,
        comment="The offer this record counters (null for an original offer)",
    )

    # --- Parties ---
    proposing_party_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    proposing_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    receiving_party_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    receiving_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # --- Terms ---
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AUD")
    finance_type: Mapped[str] = mapped_column(String(30), nullable=False)
    finance_lender: Mapped[str | None] = mapped_column(String(200), nullable=True)
    deposit_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    settlement_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Conditions ---
    subject_to_finance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subject_to_building_inspection: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    subject_to_pest_inspection: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    subject_to_valuation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subject_to_sale_of_property: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    other_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    cooling_off_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OfferStatus.DRAFT.value,
        comment="Current lifecycle state (guarded by OfferStateMachine)",
    )
    seller_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    submitted_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    withdrawn_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", OfferStatus), name="ck_offer_valid_status"),
        CheckConstraint("amount_cents > 0", name="ck_offer_positive_amount"),
        CheckConstraint("settlement_days > 0", name="ck_offer_positive_settlement"),
        CheckConstraint(
            "proposing_party_id <> receiving_party_id", name="ck_offer_distinct_parties"
        ),
        Index("idx_offer_property", "property_id"),
        Index("idx_offer_status", "status"),
        Index("idx_offer_expires_at", "expires_at"),
        Index("idx_offer_parent", "parent_offer_id"),
    )

    # --- Derived predicates ---

    @property
    def is_counter_offer(self) -> bool:
        return self.parent_offer_id is not None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_OFFER_STATUSES

    @property
    def is_finalized(self) -> bool:
        return self.status in FINALIZED_OFFER_STATUSES

    def is_expired(self, now: datetime | None = None) -> bool:
        """Displayed expiry: explicitly expired, or past due and not finalized."""
        if self.status == OfferStatus.EXPIRED:
            return True
        now = now or _utcnow()
        return (
            self.expires_at is not None and self.expires_at < now and not self.is_finalized
        )

    @property
    def has_conditions(self) -> bool:
        return bool(self.conditions_list)

    @property
    def conditions_list(self) -> list[str]:
        conditions = []
        if self.subject_to_finance:
            conditions.append("Finance")
        if self.subject_to_building_inspection:
            conditions.append("Building Inspection")
        if self.subject_to_pest_inspection:
            conditions.append("Pest Inspection")
        if self.subject_to_valuation:
            conditions.append("Valuation")
        if self.subject_to_sale_of_property:
            conditions.append("Sale of Property")
        if self.other_conditions:
            conditions.append(f"Other: {self.other_conditions}")
        return conditions

    def __repr__(self) -> str:
        return (
            f"<Offer id={self.id} status={self.status} "
            f"amount_cents={self.amount_cents} parent={self.parent_offer_id}>"
        )


# ---------------------------------------------------------------------------
# 3. transactions
# ---------------------------------------------------------------------------
class Transaction(Base):
    """The binding sale created exactly once, when an offer is accepted."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id"), nullable=False
    )
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("offers.id"),
        nullable=False,
        comment="Originating offer (one transaction per offer)",
    )

    # --- Parties ---
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    buyer_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    buyer_conveyancer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    seller_conveyancer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # --- Money ---
    sale_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deposit_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    deposit_paid_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.PENDING.value,
        comment="Current phase (guarded by TransactionStateMachine)",
    )

    # --- Key dates ---
    exchange_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cooling_off_ends_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)

    # --- Condition satisfaction ---
    finance_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finance_approved_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    building_inspection_passed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    building_inspection_at: Mapped[datetime | None] = mapped_column(
        AwareDateTime, nullable=True
    )
    pest_inspection_passed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    pest_inspection_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)

    # --- Completion ---
    settled_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    fallen_through_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    fallen_through_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            _in_list("status", TransactionStatus), name="ck_transaction_valid_status"
        ),
        CheckConstraint("sale_price_cents > 0", name="ck_transaction_positive_price"),
        CheckConstraint("deposit_paid_cents >= 0", name="ck_transaction_deposit_paid"),
        UniqueConstraint("offer_id", name="uq_transaction_offer"),
        Index("idx_transaction_status", "status"),
        Index("idx_transaction_settlement_date", "settlement_date"),
        Index("idx_transaction_cooling_off", "cooling_off_ends_at"),
    )

    # --- Derived predicates ---

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_TRANSACTION_STATUSES

    def can_rescind(self, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        return (
            self.status == TransactionStatus.COOLING_OFF
            and self.cooling_off_ends_at is not None
            and self.cooling_off_ends_at > now
        )

    def is_overdue(self, today: date | None = None) -> bool:
        today = today or _utcnow().date()
        return (
            self.settlement_date is not None
            and self.settlement_date < today
            and self.is_active
        )

    def days_until_settlement(self, today: date | None = None) -> int | None:
        if self.settlement_date is None:
            return None
        today = today or _utcnow().date()
        return (self.settlement_date - today).days

    @property
    def deposit_outstanding(self) -> bool:
        if not self.deposit_cents:
            return False
        return (self.deposit_paid_cents or 0) < self.deposit_cents

    @property
    def deposit_remaining_cents(self) -> int:
        if not self.deposit_cents:
            return 0
        return max(self.deposit_cents - (self.deposit_paid_cents or 0), 0)

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} status={self.status} "
            f"sale_price_cents={self.sale_price_cents}>"
        )


# ---------------------------------------------------------------------------
# 4. transaction_events (Append-Only Timeline)
# ---------------------------------------------------------------------------
class TransactionEvent(Base):
    """Immutable record of one occurrence on a transaction.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "transaction_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata",
        MetadataJSON,
        nullable=False,
        default=dict,
        comment="Arbitrary context: amounts, reasons, expiry instants",
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Party who triggered the event (null for system events)",
    )
    occurred_at: Mapped[datetime] = mapped_column(
        AwareDateTime, nullable=False, default=_utcnow
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Position within the transaction's timeline",
    )

    __table_args__ = (
        CheckConstraint(
            _in_list("event_type", TransactionEventType), name="ck_event_valid_type"
        ),
        UniqueConstraint("transaction_id", "sequence", name="uq_event_sequence"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_occurred_at", "occurred_at"),
    )

    @property
    def is_milestone(self) -> bool:
        return TransactionEventType(self.event_type).is_milestone

    def __repr__(self) -> str:
        return f"<TransactionEvent id={self.id} type={self.event_type}>"


# ---------------------------------------------------------------------------
# 5. transaction_milestones
# ---------------------------------------------------------------------------
class TransactionMilestone(Base):
    """A named checklist marker, completed at most once."""

    __tablename__ = "transaction_milestones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    milestone_type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    visible_to: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Visibility.BOTH.value
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    completed_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        CheckConstraint(
            _in_list("milestone_type", MilestoneType), name="ck_milestone_valid_type"
        ),
        CheckConstraint(
            _in_list("visible_to", Visibility), name="ck_milestone_valid_visibility"
        ),
        UniqueConstraint("transaction_id", "milestone_type", name="uq_milestone_type"),
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def __repr__(self) -> str:
        return (
            f"<TransactionMilestone type={self.milestone_type} "
            f"completed={self.is_completed}>"
        )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
for _model in (Property, Offer, Transaction):
    event.listen(_model, "before_update", _set_updated_at)

#!/usr/bin/env python3
"""Property Settlement: End-to-End Simulation.

Simulates three scenarios with BuyerBot and SellerBot parties on a
simulated clock:

    Scenario 1: Straight Sale
        - Buyer offers $850,000, 42-day settlement, subject to finance
        - Seller accepts -> transaction opened, listing under offer
        - Exchange on a Monday, cooling-off until the following Monday
        - Finance approved inside cooling-off (stays in cooling-off)
        - After cooling-off lapses, a building inspection report triggers
          the move to unconditional -> settling -> settled

    Scenario 2: Negotiation
        - Buyer offers $800,000, seller counters at $870,000
        - Buyer counters back at $840,000, seller accepts
        - The negotiation history shows the roles swapping each round

    Scenario 3: Cooling-Off Rescission and Expiry
        - A cash offer is accepted and exchanged
        - Buyer rescinds inside cooling-off -> listing back on the market
        - A second offer is left unanswered and the expiry sweep closes it

Usage:
    # In-memory SQLite (nothing written to disk):
    python simulation.py --sqlite

    # Against the configured DATABASE_URL:
    python simulation.py

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from property_settlement.config import get_settings
from property_settlement.logging_config import get_logger, setup_logging_from_settings

setup_logging_from_settings(get_settings())
logger = get_logger("simulation")

from property_settlement.domain.enums import FinanceType, PropertyStatus  # noqa: E402
from property_settlement.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_session_factory,
    init_db,
)
from property_settlement.infrastructure.database.orm_models import Property  # noqa: E402
from property_settlement.infrastructure.database.repositories import (  # noqa: E402
    PropertyRepository,
)
from property_settlement.schemas.offer import CounterTerms, OfferDraft  # noqa: E402
from property_settlement.services.event_log import EventLog  # noqa: E402
from property_settlement.services.expiry_scheduler import run_sweep  # noqa: E402
from property_settlement.services.offer_service import OfferService  # noqa: E402
from property_settlement.services.transaction_service import (  # noqa: E402
    TransactionService,
)

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None

# Monday 2 March 2026, 09:00 UTC
SIMULATION_START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@dataclass
class SimClock:
    """A clock the scenarios move forward by hand."""

    current: datetime = SIMULATION_START

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)

    @property
    def today(self) -> date:
        return self.current.date()


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        _sqlite_session_factory = build_session_factory(_sqlite_engine)
        await create_tables(_sqlite_engine)
        logger.info("database.sqlite_initialized")
    else:
        await init_db()


def session_factory():  # noqa: ANN201
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory
    return get_session_factory()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        await close_db()


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------
@dataclass
class SellerBot:
    """Simulated vendor who lists a property and answers offers."""

    name: str = "Seller"
    party_id: uuid.UUID = field(default_factory=uuid.uuid4)

    async def list_property(self, session: Any, price_cents: int) -> uuid.UUID:
        prop = await PropertyRepository(session).create(
            Property(
                owner_id=self.party_id,
                status=PropertyStatus.ACTIVE.value,
                price_cents=price_cents,
            )
        )
        await session.commit()
        logger.info("🏠 SELLER: Property listed", property_id=str(prop.id), price_cents=price_cents)
        return prop.id


@dataclass
class BuyerBot:
    """Simulated buyer who makes and answers offers."""

    name: str = "Buyer"
    party_id: uuid.UUID = field(default_factory=uuid.uuid4)

    async def make_offer(
        self,
        offers: OfferService,
        property_id: uuid.UUID,
        amount_cents: int,
        **terms: Any,
    ) -> uuid.UUID:
        draft = OfferDraft(
            property_id=property_id,
            proposing_party_id=self.party_id,
            amount_cents=amount_cents,
            finance_type=terms.pop("finance_type", FinanceType.CASH),
            settlement_days=terms.pop("settlement_days", 42),
            **terms,
        )
        offer = await offers.create_offer(draft)
        result = await offers.submit(offer.id)
        _expect(result, "submit offer")
        logger.info("🔵 BUYER: Offer submitted", offer_id=str(offer.id), amount_cents=amount_cents)
        return offer.id


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _expect(result: Any, action: str) -> Any:
    if not result.ok:
        raise RuntimeError(f"{action} failed: {result.reason}")
    return result.value


async def print_timeline(session: Any, transaction_id: uuid.UUID) -> None:
    """Print the full timeline for a transaction."""
    events = await EventLog(session).timeline(transaction_id)
    print("\n  📜 Timeline:")
    for evt in events:
        marker = "★" if evt.is_milestone else " "
        print(f"    {evt.sequence:>2}. {marker} [{evt.event_type}] {evt.title}")
    print()


# ===========================================================================
# Scenario 1: Straight Sale
# ===========================================================================
async def scenario_1_straight_sale(factory) -> dict:  # noqa: ANN001
    """Offer, accept, exchange, cooling-off, conditions, settlement."""
    banner("SCENARIO 1: Straight Sale: $850,000 subject to finance")

    clock = SimClock()
    seller = SellerBot()
    buyer = BuyerBot()

    async with factory() as session:
        offers = OfferService(session, clock)
        transactions = TransactionService(session, clock)

        section("Step 1: Listing and offer")
        property_id = await seller.list_property(session, 85_000_000)
        offer_id = await buyer.make_offer(
            offers,
            property_id,
            85_000_000,
            finance_type=FinanceType.SUBJECT_TO_FINANCE,
            subject_to_finance=True,
            deposit_cents=8_500_000,
        )
        await session.commit()

        section("Step 2: Seller accepts")
        txn = _expect(await offers.accept(offer_id, actor=seller.party_id), "accept")
        await session.commit()
        print(f"  Transaction {txn.id} opened at {dollars(txn.sale_price_cents)} ({txn.status})")

        section("Step 3: Exchange and cooling-off")
        _expect(await transactions.exchange(txn.id, clock.today), "exchange")
        _expect(await transactions.start_cooling_off(txn.id), "start cooling-off")
        await session.commit()
        print(f"  Cooling-off ends {txn.cooling_off_ends_at:%A %d %B %Y %H:%M}")

        section("Step 4: Deposit and finance inside cooling-off")
        clock.advance(days=2)
        _expect(
            await transactions.record_deposit_payment(txn.id, 8_500_000, actor=buyer.party_id),
            "deposit",
        )
        _expect(await transactions.approve_finance(txn.id, actor=buyer.party_id), "finance")
        await session.commit()
        print(f"  Finance approved, status still {txn.status}")

        section("Step 5: Cooling-off lapses, inspection report arrives")
        clock.advance(days=6)
        _expect(await transactions.pass_building_inspection(txn.id), "building inspection")
        await session.commit()
        print(f"  Status now {txn.status}")

        section("Step 6: Settlement")
        _expect(await transactions.start_settling(txn.id), "start settling")
        _expect(await transactions.settle(txn.id, actor=seller.party_id), "settle")
        await session.commit()

        prop = await PropertyRepository(session).get_by_id(property_id)
        print(f"  Transaction {txn.status}; property {prop.status} at {dollars(prop.price_cents)}")
        await print_timeline(session, txn.id)

        return {
            "transaction_status": txn.status,
            "property_status": prop.status,
            "sale_price_cents": prop.price_cents,
            "cooling_off_ends_at": txn.cooling_off_ends_at,
        }


# ===========================================================================
# Scenario 2: Negotiation
# ===========================================================================
async def scenario_2_negotiation(factory) -> dict:  # noqa: ANN001
    """Two counter-offers, then acceptance of the buyer's last proposal."""
    banner("SCENARIO 2: Negotiation: counter and counter again")

    clock = SimClock()
    seller = SellerBot()
    buyer = BuyerBot()

    async with factory() as session:
        offers = OfferService(session, clock)

        section("Step 1: Opening offer")
        property_id = await seller.list_property(session, 87_000_000)
        first_id = await buyer.make_offer(offers, property_id, 80_000_000, settlement_days=60)
        await session.commit()

        section("Step 2: Seller counters")
        clock.advance(hours=4)
        second = _expect(
            await offers.counter(
                first_id, 87_000_000, CounterTerms(seller_response="Firm on the asking price")
            ),
            "seller counter",
        )
        await session.commit()

        section("Step 3: Buyer counters back")
        clock.advance(days=1)
        third = _expect(
            await offers.counter(second.id, 84_000_000, CounterTerms(settlement_days=45)),
            "buyer counter",
        )
        await session.commit()

        section("Step 4: Seller accepts")
        txn = _expect(await offers.accept(third.id, actor=seller.party_id), "accept")
        await session.commit()

        history = await offers.negotiation_history(third.id)
        print("  🤝 Negotiation:")
        for round_no, offer in enumerate(history, 1):
            who = "buyer" if offer.proposing_party_id == buyer.party_id else "seller"
            print(f"    {round_no}. {who:<6} {dollars(offer.amount_cents):>15}  {offer.status}")
        print(f"\n  Transaction at {dollars(txn.sale_price_cents)}, buyer is the original buyer: "
              f"{txn.buyer_id == buyer.party_id}")

        return {
            "history": [(o.proposing_party_id, o.amount_cents, o.status) for o in history],
            "buyer_id": txn.buyer_id,
            "seller_id": txn.seller_id,
            "sale_price_cents": txn.sale_price_cents,
            "settlement_date": txn.settlement_date,
        }


# ===========================================================================
# Scenario 3: Cooling-Off Rescission and Expiry
# ===========================================================================
async def scenario_3_rescind_and_expire(factory) -> dict:  # noqa: ANN001
    """Rescission puts the listing back on the market; a stale offer expires."""
    banner("SCENARIO 3: Cooling-off rescission and offer expiry")

    clock = SimClock()
    seller = SellerBot()
    buyer = BuyerBot()
    second_buyer = BuyerBot(name="Second buyer")

    async with factory() as session:
        offers = OfferService(session, clock)
        transactions = TransactionService(session, clock)

        section("Step 1: Cash offer accepted and exchanged")
        property_id = await seller.list_property(session, 95_000_000)
        offer_id = await buyer.make_offer(offers, property_id, 95_000_000, settlement_days=30)
        txn = _expect(await offers.accept(offer_id), "accept")
        _expect(await transactions.exchange(txn.id, clock.today), "exchange")
        _expect(await transactions.start_cooling_off(txn.id), "start cooling-off")
        await session.commit()

        section("Step 2: Buyer rescinds")
        clock.advance(days=1)
        _expect(await transactions.rescind(txn.id, actor=buyer.party_id), "rescind")
        await session.commit()
        prop = await PropertyRepository(session).get_by_id(property_id)
        print(f"  Transaction {txn.status} ({txn.fallen_through_reason}); property {prop.status}")

        section("Step 3: A new offer goes unanswered")
        stale_id = await second_buyer.make_offer(offers, property_id, 90_000_000)
        await session.commit()

    clock.advance(days=6)
    reports = await run_sweep(factory, clock)
    print(f"  Sweep: {reports['offers'].to_dict()}")

    async with factory() as session:
        stale = await OfferService(session, clock).get_offer(stale_id)
        print(f"  Stale offer is now {stale.status}")
        return {
            "transaction_status": txn.status,
            "property_status": prop.status,
            "stale_offer_status": stale.status,
            "expired_count": reports["offers"].processed,
        }


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_straight_sale,
    2: scenario_2_negotiation,
    3: scenario_3_rescind_and_expire,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🏡" * 35)
        print("  PROPERTY SETTLEMENT: SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "configured DATABASE_URL"
        print(f"  Database: {db_type}")
        print("🏡" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario(session_factory())

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        await SCENARIOS[num](session_factory())
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Property Settlement Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of the configured database.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))

"""Shared test fixtures for the property settlement test suite.

Provides:
    - An in-memory SQLite database per test (schema created fresh)
    - A controllable clock, starting on a Monday morning
    - Factories for listings, offer drafts and accepted transactions
    - A notifier that records what it was asked to send
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

import pytest
import pytest_asyncio

from property_settlement.config import Settings
from property_settlement.domain.enums import FinanceType, PropertyStatus
from property_settlement.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from property_settlement.infrastructure.database.orm_models import Property
from property_settlement.infrastructure.database.repositories import PropertyRepository
from property_settlement.schemas.offer import OfferDraft
from property_settlement.services.offer_service import OfferService
from property_settlement.services.transaction_service import TransactionService

# Monday 2 March 2026, 09:00 UTC
MONDAY_MORNING = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Callable clock that only moves when a test moves it."""

    current: datetime = MONDAY_MORNING

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)

    @property
    def today(self) -> date:
        return self.current.date()


@dataclass
class RecordingNotifier:
    sent: list[tuple[str, dict]] = field(default_factory=list)

    async def notify(self, event: str, payload: dict) -> None:
        self.sent.append((event, payload))

    def events(self) -> list[str]:
        return [event for event, _ in self.sent]


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        offer_validity_days=5,
        cooling_off_business_days=5,
        jurisdiction_timezone="UTC",
        default_currency="AUD",
    )


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# Party and Listing Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.UUID("5e11e700-0000-4000-8000-000000000001")


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.UUID("b0b00000-0000-4000-8000-000000000002")


@pytest_asyncio.fixture
async def listed_property(session, seller_id) -> Property:
    """An active, offerable listing owned by the seller."""
    return await PropertyRepository(session).create(
        Property(
            owner_id=seller_id,
            status=PropertyStatus.ACTIVE.value,
            price_cents=85_000_000,
            price_hidden=False,
        )
    )


@pytest.fixture
def make_draft(listed_property, buyer_id):
    """Build an OfferDraft for the listed property; keyword overrides win."""

    def _make(**overrides) -> OfferDraft:
        data = {
            "property_id": listed_property.id,
            "proposing_party_id": buyer_id,
            "amount_cents": 85_000_000,
            "finance_type": FinanceType.SUBJECT_TO_FINANCE,
            "settlement_days": 42,
            "deposit_cents": 8_500_000,
            "subject_to_finance": True,
        }
        data.update(overrides)
        return OfferDraft(**data)

    return _make


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def offer_service(session, clock, notifier, settings) -> OfferService:
    return OfferService(session, clock, notifier, settings)


@pytest.fixture
def transaction_service(session, clock, settings) -> TransactionService:
    return TransactionService(session, clock, settings)


@pytest_asyncio.fixture
async def submitted_offer(offer_service, make_draft):
    offer = await offer_service.create_offer(make_draft())
    result = await offer_service.submit(offer.id)
    assert result.ok, result.reason
    return offer


@pytest.fixture
def open_transaction(offer_service, make_draft, seller_id):
    """Create, submit and accept an offer; return the new Transaction."""

    async def _open(**overrides):
        offer = await offer_service.create_offer(make_draft(**overrides))
        assert (await offer_service.submit(offer.id)).ok
        result = await offer_service.accept(offer.id, actor=seller_id)
        assert result.ok, result.reason
        return result.value

    return _open

"""Tests for the time-driven expiry and cooling-off sweeps."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from property_settlement.domain.enums import OfferStatus, TransactionStatus
from property_settlement.infrastructure.database.repositories import OfferRepository
from property_settlement.services import expiry_scheduler
from property_settlement.services.expiry_scheduler import (
    ExpiryScheduler,
    SweepReport,
    run_forever,
    run_sweep,
)
from property_settlement.services.offer_service import OfferService


@pytest.fixture
def scheduler(session, clock, notifier, settings) -> ExpiryScheduler:
    return ExpiryScheduler(session, clock, notifier, settings)


async def _submitted(offer_service, make_draft, count: int) -> list:
    offers = []
    for _ in range(count):
        offer = await offer_service.create_offer(make_draft(proposing_party_id=uuid.uuid4()))
        assert (await offer_service.submit(offer.id)).ok
        offers.append(offer)
    return offers


class TestOfferSweep:
    @pytest.mark.asyncio
    async def test_expires_only_overdue_offers(
        self, scheduler, offer_service, make_draft, clock
    ) -> None:
        (old,) = await _submitted(offer_service, make_draft, 1)
        clock.advance(days=3)
        (fresh,) = await _submitted(offer_service, make_draft, 1)
        clock.advance(days=3)

        report = await scheduler.expire_overdue_offers()

        assert report == SweepReport(examined=1, processed=1, skipped=0, failed=0)
        assert old.status == OfferStatus.EXPIRED
        assert fresh.status == OfferStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(
        self, scheduler, offer_service, make_draft, clock
    ) -> None:
        await _submitted(offer_service, make_draft, 2)
        clock.advance(days=6)

        first = await scheduler.expire_overdue_offers()
        second = await scheduler.expire_overdue_offers()

        assert first.processed == 2
        assert second == SweepReport()

    @pytest.mark.asyncio
    async def test_failing_item_does_not_abort_batch(
        self, scheduler, offer_service, make_draft, clock, monkeypatch
    ) -> None:
        bad, good = await _submitted(offer_service, make_draft, 2)
        clock.advance(days=6)
        original = OfferService.expire

        async def flaky(self, offer_id):
            if offer_id == bad.id:
                raise RuntimeError("database hiccup")
            return await original(self, offer_id)

        monkeypatch.setattr(OfferService, "expire", flaky)

        report = await scheduler.expire_overdue_offers()

        assert report == SweepReport(examined=2, processed=1, skipped=0, failed=1)
        assert good.status == OfferStatus.EXPIRED
        assert bad.status == OfferStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_offer_finalized_mid_sweep_is_skipped(
        self, scheduler, offer_service, make_draft, clock, monkeypatch
    ) -> None:
        (offer,) = await _submitted(offer_service, make_draft, 1)
        clock.advance(days=6)
        original = OfferRepository.get_expired_unprocessed

        async def buyer_withdraws_meanwhile(self, now):
            selected = await original(self, now)
            await offer_service.withdraw(offer.id)
            return selected

        monkeypatch.setattr(
            OfferRepository, "get_expired_unprocessed", buyer_withdraws_meanwhile
        )

        report = await scheduler.expire_overdue_offers()

        assert report == SweepReport(examined=1, processed=0, skipped=1, failed=0)
        assert offer.status == OfferStatus.WITHDRAWN


class TestCoolingOffSweep:
    @pytest.mark.asyncio
    async def test_lapsed_window_with_conditions_met(
        self, scheduler, open_transaction, transaction_service, clock
    ) -> None:
        txn = await open_transaction(subject_to_finance=False)
        await transaction_service.exchange(txn.id, clock.today)
        await transaction_service.start_cooling_off(txn.id)
        clock.advance(days=8)

        report = await scheduler.advance_elapsed_cooling_off()

        assert report.processed == 1
        assert txn.status == TransactionStatus.UNCONDITIONAL

    @pytest.mark.asyncio
    async def test_outstanding_condition_is_skipped(
        self, scheduler, open_transaction, transaction_service, clock
    ) -> None:
        txn = await open_transaction()
        await transaction_service.exchange(txn.id, clock.today)
        await transaction_service.start_cooling_off(txn.id)
        clock.advance(days=8)

        report = await scheduler.advance_elapsed_cooling_off()

        assert report == SweepReport(examined=1, processed=0, skipped=1, failed=0)
        assert txn.status == TransactionStatus.COOLING_OFF


class TestPeriodicRunner:
    @pytest.mark.asyncio
    async def test_run_sweep_commits(
        self, session, session_factory, offer_service, make_draft, clock, settings
    ) -> None:
        (offer,) = await _submitted(offer_service, make_draft, 1)
        await session.commit()
        clock.advance(days=6)

        reports = await run_sweep(session_factory, clock, settings=settings)

        assert reports["offers"].processed == 1
        assert reports["cooling_off"] == SweepReport()
        await session.refresh(offer)
        assert offer.status == OfferStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_run_forever_survives_failing_tick(
        self, session_factory, clock, settings, monkeypatch
    ) -> None:
        calls = []
        stop = asyncio.Event()

        async def sweep(factory, clock_, notifier_, settings_):
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            stop.set()
            return {}

        monkeypatch.setattr(expiry_scheduler, "run_sweep", sweep)

        await asyncio.wait_for(
            run_forever(session_factory, stop, 0.01, clock, settings=settings),
            timeout=2,
        )

        assert calls == [0, 1]

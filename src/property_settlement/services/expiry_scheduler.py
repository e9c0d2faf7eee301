"""Expiry sweep: time-driven transitions nobody asks for explicitly.

Two kinds of record move on just because time passes:
    - active offers whose validity window has closed become ``expired``
    - cooling-off transactions whose window has elapsed with every
      condition met become ``unconditional``

Each record is processed in its own savepoint so one failure never
aborts the rest of the batch. Running a sweep twice is harmless: records
already moved on are not selected again, and any that were finalized by a
user between selection and processing are counted as skipped.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from property_settlement.config import Settings, get_settings
from property_settlement.infrastructure.database.repositories import (
    OfferRepository,
    TransactionRepository,
)
from property_settlement.logging_config import get_logger
from property_settlement.services.base import ServiceBase
from property_settlement.services.offer_service import OfferService
from property_settlement.services.transaction_service import TransactionService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from property_settlement.domain.collaborators import Notifier
    from property_settlement.services.base import Clock

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Counts for one pass over one kind of record."""

    examined: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ExpiryScheduler(ServiceBase):
    """Runs the time-driven sweeps against one session."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._offer_repo = OfferRepository(session)
        self._transaction_repo = TransactionRepository(session)
        self._offers = OfferService(session, clock, notifier, settings)
        self._transactions = TransactionService(session, clock, settings)

    async def expire_overdue_offers(self) -> SweepReport:
        report = SweepReport()
        offer_ids = [o.id for o in await self._offer_repo.get_expired_unprocessed(self.now())]
        for offer_id in offer_ids:
            report.examined += 1
            try:
                async with self._session.begin_nested():
                    result = await self._offers.expire(offer_id)
            except Exception:
                report.failed += 1
                logger.exception("expiry.offer_failed", offer_id=str(offer_id))
                continue
            if result.ok:
                report.processed += 1
            else:
                report.skipped += 1
                logger.debug("expiry.offer_skipped", offer_id=str(offer_id), reason=result.reason)

        logger.info("expiry.offers_swept", **report.to_dict())
        return report

    async def advance_elapsed_cooling_off(self) -> SweepReport:
        report = SweepReport()
        txn_ids = [
            t.id for t in await self._transaction_repo.get_cooling_off_elapsed(self.now())
        ]
        for txn_id in txn_ids:
            report.examined += 1
            try:
                async with self._session.begin_nested():
                    result = await self._transactions.advance_elapsed_cooling_off(txn_id)
            except Exception:
                report.failed += 1
                logger.exception("expiry.cooling_off_failed", transaction_id=str(txn_id))
                continue
            if result.ok:
                report.processed += 1
            else:
                report.skipped += 1
                logger.debug(
                    "expiry.cooling_off_skipped",
                    transaction_id=str(txn_id),
                    reason=result.reason,
                )

        logger.info("expiry.cooling_off_swept", **report.to_dict())
        return report

    async def run_once(self) -> dict[str, SweepReport]:
        return {
            "offers": await self.expire_overdue_offers(),
            "cooling_off": await self.advance_elapsed_cooling_off(),
        }


async def run_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
) -> dict[str, SweepReport]:
    """One sweep in a fresh session, committed at the end."""
    async with session_factory() as session:
        try:
            reports = await ExpiryScheduler(session, clock, notifier, settings).run_once()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return reports


async def run_forever(
    session_factory: async_sessionmaker[AsyncSession],
    stop: asyncio.Event | None = None,
    interval_seconds: float | None = None,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
) -> None:
    """Sweep on a fixed interval until ``stop`` is set.

    A failing sweep is logged and the loop carries on with the next tick.
    """
    settings = settings or get_settings()
    interval = interval_seconds or settings.expiry_sweep_interval_seconds
    stop = stop or asyncio.Event()

    logger.info("expiry.scheduler_started", interval_seconds=interval)
    while not stop.is_set():
        try:
            await run_sweep(session_factory, clock, notifier, settings)
        except Exception:
            logger.exception("expiry.sweep_failed")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            continue
    logger.info("expiry.scheduler_stopped")

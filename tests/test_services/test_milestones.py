"""Tests for the per-transaction milestone checklist."""

from __future__ import annotations

import uuid

import pytest

from property_settlement.domain.enums import MilestoneType
from property_settlement.services.milestone_service import STANDARD_MILESTONES, MilestoneService


class TestMilestoneService:
    @pytest.mark.asyncio
    async def test_standard_checklist_in_order(self, open_transaction, session) -> None:
        txn = await open_transaction()
        milestones = await MilestoneService(session).for_transaction(txn.id)

        assert [m.milestone_type for m in milestones] == [t for t, _, _ in STANDARD_MILESTONES]
        assert milestones[0].title == "Contract Prepared"

    @pytest.mark.asyncio
    async def test_complete_once_only(self, open_transaction, session, clock, seller_id) -> None:
        txn = await open_transaction()
        service = MilestoneService(session, clock)

        done = await service.complete(txn.id, MilestoneType.KEYS_READY, actor=seller_id)
        assert done.ok
        assert done.value.completed_at == clock.current
        assert done.value.completed_by_id == seller_id

        clock.advance(days=1)
        again = await service.complete(txn.id, MilestoneType.KEYS_READY)
        assert not again.ok
        assert done.value.completed_at != clock.current

    @pytest.mark.asyncio
    async def test_visibility_by_side(
        self, open_transaction, session, seller_id, buyer_id
    ) -> None:
        txn = await open_transaction()
        service = MilestoneService(session)

        seller_view = {m.milestone_type for m in await service.visible_to(txn, seller_id)}
        buyer_view = {m.milestone_type for m in await service.visible_to(txn, buyer_id)}

        assert len(seller_view) == 12
        assert len(buyer_view) == 10
        assert MilestoneType.KEYS_READY not in buyer_view
        assert MilestoneType.CONTRACT_PREPARED not in buyer_view
        assert await service.visible_to(txn, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_completion_percentage(self, open_transaction, session) -> None:
        txn = await open_transaction()
        service = MilestoneService(session)

        # offer_accepted is completed when the transaction opens
        assert await service.completion_percentage(txn.id) == 8
        await service.complete(txn.id, MilestoneType.CONTRACT_PREPARED)
        await service.complete(txn.id, MilestoneType.KEYS_READY)
        assert await service.completion_percentage(txn.id) == 25
        assert await service.completion_percentage(uuid.uuid4()) == 0

"""Runs the simulation.py scenarios against the test database."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

import simulation

pytestmark = pytest.mark.simulation


class TestScenarios:
    @pytest.mark.asyncio
    async def test_straight_sale(self, session_factory) -> None:
        summary = await simulation.scenario_1_straight_sale(session_factory)

        assert summary["transaction_status"] == "settled"
        assert summary["property_status"] == "sold"
        assert summary["sale_price_cents"] == 85_000_000
        assert summary["cooling_off_ends_at"] == datetime(
            2026, 3, 9, 23, 59, 59, 999999, tzinfo=UTC
        )

    @pytest.mark.asyncio
    async def test_negotiation(self, session_factory) -> None:
        summary = await simulation.scenario_2_negotiation(session_factory)

        (first_by, first_amount, first_status), (second_by, _, _), (third_by, _, last) = (
            summary["history"]
        )
        assert first_by == third_by == summary["buyer_id"]
        assert second_by == summary["seller_id"]
        assert (first_amount, first_status, last) == (80_000_000, "countered", "accepted")
        assert summary["sale_price_cents"] == 84_000_000
        assert summary["settlement_date"] == date(2026, 4, 17)

    @pytest.mark.asyncio
    async def test_rescind_and_expire(self, session_factory) -> None:
        summary = await simulation.scenario_3_rescind_and_expire(session_factory)

        assert summary["transaction_status"] == "fallen_through"
        assert summary["property_status"] == "active"
        assert summary["stale_offer_status"] == "expired"
        assert summary["expired_count"] == 1

"""Tests for the offer input models."""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from property_settlement.domain.enums import FinanceType
from property_settlement.schemas.offer import CounterTerms, OfferDraft


def _draft(**overrides) -> OfferDraft:
    data = {
        "property_id": uuid.uuid4(),
        "proposing_party_id": uuid.uuid4(),
        "amount_cents": 85_000_000,
        "finance_type": "cash",
        "settlement_days": 42,
    }
    data.update(overrides)
    return OfferDraft(**data)


class TestOfferDraft:
    def test_valid_draft(self) -> None:
        draft = _draft()
        assert draft.finance_type is FinanceType.CASH
        assert draft.currency is None
        assert not draft.cooling_off_waived

    @pytest.mark.parametrize("amount", [0, -1])
    def test_amount_must_be_positive(self, amount: int) -> None:
        with pytest.raises(ValidationError):
            _draft(amount_cents=amount)

    @pytest.mark.parametrize("days", [0, -5, 366])
    def test_settlement_days_bounds(self, days: int) -> None:
        with pytest.raises(ValidationError):
            _draft(settlement_days=days)

    def test_unknown_finance_type(self) -> None:
        with pytest.raises(ValidationError):
            _draft(finance_type="crypto")

    def test_deposit_cannot_exceed_amount(self) -> None:
        with pytest.raises(ValidationError, match="deposit_cents cannot exceed"):
            _draft(amount_cents=100, deposit_cents=101)

    def test_draft_is_frozen(self) -> None:
        draft = _draft()
        with pytest.raises(ValidationError):
            draft.amount_cents = 1


class TestCounterTerms:
    def test_unset_fields_inherit(self) -> None:
        terms = CounterTerms()
        assert terms.inherited("settlement_days", 30) == 30
        assert terms.inherited("subject_to_finance", True) is True

    def test_overrides_win_even_when_falsy(self) -> None:
        terms = CounterTerms(subject_to_finance=False, settlement_days=60)
        assert terms.inherited("subject_to_finance", True) is False
        assert terms.inherited("settlement_days", 30) == 60

    def test_explicit_none_clears_deposit_and_other_conditions(self) -> None:
        terms = CounterTerms(deposit_cents=None, other_conditions=None)
        assert terms.inherited("deposit_cents", 8_500_000) is None
        assert terms.inherited("other_conditions", "Subject to strata report") is None

    def test_explicit_none_inherits_required_terms(self) -> None:
        terms = CounterTerms(settlement_days=None, subject_to_finance=None)
        assert terms.inherited("settlement_days", 30) == 30
        assert terms.inherited("subject_to_finance", True) is True

"""Tests for the condition gate and operation results."""

from __future__ import annotations

from types import SimpleNamespace

from property_settlement.domain.conditions import Condition, ConditionGate
from property_settlement.domain.results import OperationResult


def _offer(**flags):
    defaults = {
        "subject_to_finance": False,
        "subject_to_building_inspection": False,
        "subject_to_pest_inspection": False,
    }
    return SimpleNamespace(**{**defaults, **flags})


def _txn(**progress):
    defaults = {
        "finance_approved": False,
        "building_inspection_passed": False,
        "pest_inspection_passed": False,
    }
    return SimpleNamespace(**{**defaults, **progress})


class TestConditionGate:
    def test_unconditional_offer_is_satisfied(self) -> None:
        gate = ConditionGate.for_transaction(_offer(), _txn())
        assert gate.all_satisfied
        assert gate.outstanding == []

    def test_flagged_condition_blocks(self) -> None:
        gate = ConditionGate.for_transaction(_offer(subject_to_finance=True), _txn())
        assert not gate.all_satisfied
        assert gate.outstanding == [Condition.FINANCE]

    def test_satisfied_condition_clears(self) -> None:
        gate = ConditionGate.for_transaction(
            _offer(subject_to_finance=True), _txn(finance_approved=True)
        )
        assert gate.all_satisfied

    def test_unflagged_progress_is_irrelevant(self) -> None:
        gate = ConditionGate.for_transaction(
            _offer(subject_to_pest_inspection=True), _txn(building_inspection_passed=True)
        )
        assert gate.outstanding == [Condition.PEST_INSPECTION]

    def test_outstanding_in_fixed_order(self) -> None:
        gate = ConditionGate.for_transaction(
            _offer(
                subject_to_finance=True,
                subject_to_building_inspection=True,
                subject_to_pest_inspection=True,
            ),
            _txn(building_inspection_passed=True),
        )
        assert gate.outstanding == [Condition.FINANCE, Condition.PEST_INSPECTION]


class TestOperationResult:
    def test_success_is_truthy(self) -> None:
        result = OperationResult.success("value")
        assert result
        assert result.value == "value"
        assert result.reason is None

    def test_failure_is_falsy(self) -> None:
        result = OperationResult.failure("nope")
        assert not result
        assert result.to_dict() == {"ok": False, "reason": "nope"}

"""Condition gate: which negotiated conditions still block a transaction.

The accepted offer decides which conditions apply; the transaction records
which have been met. A condition the offer did not flag is vacuously
satisfied. Valuation and sale-of-property clauses are listed on the offer
but are not gated here.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Condition(enum.StrEnum):
    FINANCE = "finance"
    BUILDING_INSPECTION = "building_inspection"
    PEST_INSPECTION = "pest_inspection"


@dataclass(frozen=True)
class ConditionGate:
    """Snapshot of required vs. satisfied conditions for one transaction."""

    requires_finance: bool = False
    requires_building_inspection: bool = False
    requires_pest_inspection: bool = False
    finance_approved: bool = False
    building_inspection_passed: bool = False
    pest_inspection_passed: bool = False

    @classmethod
    def for_transaction(cls, offer, transaction) -> ConditionGate:  # noqa: ANN001
        """Build the gate from an offer's flags and a transaction's progress."""
        return cls(
            requires_finance=bool(offer.subject_to_finance),
            requires_building_inspection=bool(offer.subject_to_building_inspection),
            requires_pest_inspection=bool(offer.subject_to_pest_inspection),
            finance_approved=bool(transaction.finance_approved),
            building_inspection_passed=bool(transaction.building_inspection_passed),
            pest_inspection_passed=bool(transaction.pest_inspection_passed),
        )

    def _pairs(self) -> dict[Condition, tuple[bool, bool]]:
        return {
            Condition.FINANCE: (self.requires_finance, self.finance_approved),
            Condition.BUILDING_INSPECTION: (
                self.requires_building_inspection,
                self.building_inspection_passed,
            ),
            Condition.PEST_INSPECTION: (
                self.requires_pest_inspection,
                self.pest_inspection_passed,
            ),
        }

    @property
    def outstanding(self) -> list[Condition]:
        """Conditions that are required and not yet satisfied."""
        return [
            condition
            for condition, (required, satisfied) in self._pairs().items()
            if required and not satisfied
        ]

    @property
    def all_satisfied(self) -> bool:
        return not self.outstanding

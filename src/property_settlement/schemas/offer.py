"""Pydantic input models for offers.

These enforce the creation-time data invariants (positive amount, positive
settlement period, sane deposit) before anything reaches the database. They
are separate from the ORM models to keep validation independent of storage.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from property_settlement.domain.enums import FinanceType


class OfferDraft(BaseModel):
    """Terms of a new offer proposed by a prospective buyer."""

    model_config = ConfigDict(frozen=True)

    property_id: uuid.UUID
    proposing_party_id: uuid.UUID = Field(
        ...,
        description="Party making the offer (the prospective buyer)",
    )
    proposing_entity_id: uuid.UUID | None = Field(
        default=None,
        description="Individual, company or trust the buyer is purchasing through",
    )
    amount_cents: int = Field(..., gt=0, description="Offer price in cents")
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    finance_type: FinanceType
    finance_lender: str | None = Field(default=None, max_length=200)
    deposit_cents: int | None = Field(default=None, ge=0)
    settlement_days: int = Field(..., gt=0, le=365)

    subject_to_finance: bool = False
    subject_to_building_inspection: bool = False
    subject_to_pest_inspection: bool = False
    subject_to_valuation: bool = False
    subject_to_sale_of_property: bool = False
    other_conditions: str | None = Field(default=None, max_length=2000)
    cooling_off_waived: bool = False

    @model_validator(mode="after")
    def _deposit_within_amount(self) -> OfferDraft:
        if self.deposit_cents is not None and self.deposit_cents > self.amount_cents:
            raise ValueError("deposit_cents cannot exceed amount_cents")
        return self


# Terms a counter-offer may drop by passing an explicit None
_CLEARABLE_TERMS = frozenset({"deposit_cents", "other_conditions"})


class CounterTerms(BaseModel):
    """Overrides for a counter-offer. Unset fields inherit from the offer countered.

    ``deposit_cents`` and ``other_conditions`` can be cleared by setting them
    to None explicitly. For every other term None means "inherit".
    """

    model_config = ConfigDict(frozen=True)

    finance_type: FinanceType | None = None
    settlement_days: int | None = Field(default=None, gt=0, le=365)
    deposit_cents: int | None = Field(default=None, ge=0)
    subject_to_finance: bool | None = None
    subject_to_building_inspection: bool | None = None
    subject_to_pest_inspection: bool | None = None
    subject_to_valuation: bool | None = None
    subject_to_sale_of_property: bool | None = None
    other_conditions: str | None = Field(default=None, max_length=2000)
    seller_response: str | None = Field(default=None, max_length=2000)

    def inherited(self, field: str, fallback):  # noqa: ANN001, ANN201
        """Return the override for ``field``, or ``fallback`` when unset."""
        value = getattr(self, field)
        if value is None and not (
            field in _CLEARABLE_TERMS and field in self.model_fields_set
        ):
            return fallback
        return value

"""Pydantic input schemas."""

from property_settlement.schemas.offer import CounterTerms, OfferDraft

__all__ = ["CounterTerms", "OfferDraft"]

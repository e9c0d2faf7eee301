"""Offer negotiation and settlement lifecycle for a property marketplace."""

__version__ = "0.1.0"

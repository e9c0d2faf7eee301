"""Domain exceptions for the settlement core.

Guard violations (wrong source state, unmet preconditions) are NOT exceptions;
they come back as a failed OperationResult. The classes here cover lookups
that miss and data that must never be persisted.
"""


class SettlementError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "SETTLEMENT_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class OfferNotFoundError(SettlementError):
    """Raised when an offer ID does not exist."""

    def __init__(self, offer_id: str) -> None:
        super().__init__(
            message=f"Offer not found: {offer_id}",
            code="OFFER_NOT_FOUND",
        )
        self.offer_id = offer_id


class TransactionNotFoundError(SettlementError):
    """Raised when a transaction ID does not exist."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            message=f"Transaction not found: {transaction_id}",
            code="TRANSACTION_NOT_FOUND",
        )
        self.transaction_id = transaction_id


class PropertyNotFoundError(SettlementError):
    """Raised when a property ID does not exist."""

    def __init__(self, property_id: str) -> None:
        super().__init__(
            message=f"Property not found: {property_id}",
            code="PROPERTY_NOT_FOUND",
        )
        self.property_id = property_id


# --- Invariant Errors ---


class OfferValidationError(SettlementError):
    """Raised when an offer breaks a data invariant at creation time.

    Example: the proposing party owns the property.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        detail = "; ".join(f"{field} {msg}" for field, msg in errors.items())
        super().__init__(
            message=f"Invalid offer: {detail}",
            code="OFFER_INVALID",
        )
        self.errors = errors


class NegotiationChainError(SettlementError):
    """Raised when walking counter-offer parent links revisits an offer."""

    def __init__(self, offer_id: str) -> None:
        super().__init__(
            message=f"Counter-offer chain loops back to offer {offer_id}",
            code="NEGOTIATION_CHAIN_CYCLE",
        )
        self.offer_id = offer_id


class InvalidAmountError(SettlementError):
    """Raised when a money amount is zero or negative."""

    def __init__(self, field: str, amount_cents: int) -> None:
        super().__init__(
            message=f"{field} must be greater than 0 (got {amount_cents})",
            code="INVALID_AMOUNT",
        )
        self.field = field
        self.amount_cents = amount_cents

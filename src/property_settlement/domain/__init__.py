"""Domain layer: pure business logic with zero framework dependencies."""

from property_settlement.domain.collaborators import Notifier, PropertyGateway
from property_settlement.domain.conditions import Condition, ConditionGate
from property_settlement.domain.cooling_off import add_business_days, cooling_off_ends_at
from property_settlement.domain.enums import (
    FinanceType,
    MilestoneType,
    OfferStatus,
    PropertyStatus,
    TransactionEventType,
    TransactionStatus,
    Visibility,
)
from property_settlement.domain.exceptions import (
    InvalidAmountError,
    NegotiationChainError,
    OfferNotFoundError,
    OfferValidationError,
    PropertyNotFoundError,
    SettlementError,
    TransactionNotFoundError,
)
from property_settlement.domain.results import OperationResult
from property_settlement.domain.state_machine import (
    OfferStateMachine,
    TransactionStateMachine,
    attempt_transition,
)

__all__ = [
    "Condition",
    "ConditionGate",
    "FinanceType",
    "InvalidAmountError",
    "MilestoneType",
    "NegotiationChainError",
    "Notifier",
    "OfferNotFoundError",
    "OfferStateMachine",
    "OfferStatus",
    "OfferValidationError",
    "OperationResult",
    "PropertyGateway",
    "PropertyNotFoundError",
    "PropertyStatus",
    "SettlementError",
    "TransactionEventType",
    "TransactionNotFoundError",
    "TransactionStateMachine",
    "TransactionStatus",
    "Visibility",
    "add_business_days",
    "attempt_transition",
    "cooling_off_ends_at",
]

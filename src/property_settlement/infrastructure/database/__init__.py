"""Database infrastructure: engine, ORM models, and repositories."""

from property_settlement.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_async_session,
    get_session_factory,
    init_db,
)
from property_settlement.infrastructure.database.orm_models import (
    Base,
    Offer,
    Property,
    Transaction,
    TransactionEvent,
    TransactionMilestone,
)
from property_settlement.infrastructure.database.repositories import (
    EventRepository,
    MilestoneRepository,
    OfferRepository,
    PropertyRepository,
    TransactionRepository,
)

__all__ = [
    "Base",
    "EventRepository",
    "MilestoneRepository",
    "Offer",
    "OfferRepository",
    "Property",
    "PropertyRepository",
    "Transaction",
    "TransactionEvent",
    "TransactionMilestone",
    "TransactionRepository",
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_tables",
    "get_async_session",
    "get_session_factory",
    "init_db",
]

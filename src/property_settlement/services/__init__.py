"""Application services: use case orchestration."""

from property_settlement.services.context import bind_actor, current_actor
from property_settlement.services.event_log import EventLog
from property_settlement.services.expiry_scheduler import (
    ExpiryScheduler,
    SweepReport,
    run_forever,
    run_sweep,
)
from property_settlement.services.milestone_service import MilestoneService
from property_settlement.services.notifier import LoggingNotifier
from property_settlement.services.offer_service import OfferService
from property_settlement.services.transaction_service import TransactionService

__all__ = [
    "EventLog",
    "ExpiryScheduler",
    "LoggingNotifier",
    "MilestoneService",
    "OfferService",
    "SweepReport",
    "TransactionService",
    "bind_actor",
    "current_actor",
    "run_forever",
    "run_sweep",
]

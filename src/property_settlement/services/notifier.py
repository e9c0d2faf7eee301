"""Notification dispatch helpers.

The settlement core only needs a one-way ``notify(event, payload)``. Real
delivery (email, push, in-app) is the host application's concern; the
LoggingNotifier here is the default and simply records the dispatch.
"""

from __future__ import annotations

from property_settlement.domain.collaborators import Notifier
from property_settlement.logging_config import get_logger

logger = get_logger(__name__)


class LoggingNotifier:
    """Notifier that writes each dispatch to the structured log."""

    async def notify(self, event: str, payload: dict) -> None:
        logger.info("notification.dispatched", notification=event, **payload)


async def dispatch(notifier: Notifier, event: str, payload: dict) -> None:
    """Fire-and-forget: a failing notifier is logged, never raised to the caller."""
    try:
        await notifier.notify(event, payload)
    except Exception as exc:
        logger.warning("notification.failed", notification=event, error=str(exc))

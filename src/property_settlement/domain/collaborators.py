"""Protocols for the collaborators the settlement core calls out to.

These are Protocols (structural subtyping) so the listing store and the
notification dispatcher don't need to inherit from anything here: they just
need to match the shape.

The domain layer has ZERO imports from the database or delivery channels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import uuid
    from datetime import datetime


@runtime_checkable
class PropertyGateway(Protocol):
    """Listing operations the offer and transaction lifecycles depend on.

    Concrete implementation:
        - infrastructure/database/repositories.py (PropertyRepository)

    The mutating calls return False when the listing is not in a state that
    allows the change. They must run inside the caller's database transaction
    so an enclosing rollback undoes them.
    """

    async def is_offerable(self, property_id: uuid.UUID) -> bool:
        """Whether the listing currently accepts new offers."""
        ...

    async def mark_under_offer(self, property_id: uuid.UUID, at: datetime) -> bool:
        """Move an offerable listing to under-offer."""
        ...

    async def mark_sold(
        self, property_id: uuid.UUID, price_cents: int, at: datetime
    ) -> bool:
        """Mark the listing sold at the recorded sale price."""
        ...

    async def reactivate(self, property_id: uuid.UUID) -> bool:
        """Return an under-offer listing to active."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """One-way notification dispatch.

    Delivery guarantees belong to the implementation. Callers treat this as
    fire-and-forget.
    """

    async def notify(self, event: str, payload: dict) -> None:
        """Dispatch ``event`` with a JSON-serialisable ``payload``."""
        ...

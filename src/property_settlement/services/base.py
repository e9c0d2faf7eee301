"""Shared plumbing for the application services.

Every multi-step operation runs inside ``atomic()``: a SAVEPOINT on the
caller's session. Raising ``GuardFailure`` inside the block rolls the
savepoint back and turns into a failed OperationResult; any other exception
rolls back and propagates. Either way, the records named in the call are
reloaded so they match the database again.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from property_settlement.domain.results import OperationResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class GuardFailure(Exception):  # noqa: N818
    """Internal signal: abort the current atomic block as a refused operation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ServiceBase:
    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    @asynccontextmanager
    async def atomic(self, *records: object) -> AsyncIterator[None]:
        try:
            async with self._session.begin_nested():
                yield
        except Exception:
            for record in records:
                await self._session.refresh(record)
            raise

    async def run_atomic(self, operation, *records: object) -> OperationResult:  # noqa: ANN001
        """Run ``operation()`` atomically; map GuardFailure to a failed result."""
        try:
            async with self.atomic(*records):
                value = await operation()
        except GuardFailure as refused:
            return OperationResult.failure(refused.reason)
        return OperationResult.success(value)

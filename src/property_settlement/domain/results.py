"""Outcome of a guarded domain operation.

Guard violations are expected: a seller accepting an already-withdrawn offer
or settling before the conditions are met. Services return an
OperationResult so callers can branch on ``ok`` and show ``reason``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class OperationResult:
    """Result of a state-changing operation.

    Attributes:
        ok: Whether the operation was applied.
        reason: Human-readable refusal reason when ``ok`` is False.
        value: The record the operation produced, if any (e.g. the new
            Transaction from an accept, the counter-offer from a counter).
    """

    ok: bool
    reason: str | None = None
    value: Any = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None) -> OperationResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> OperationResult:
        return cls(ok=False, reason=reason)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "reason": self.reason}

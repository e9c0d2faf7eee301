"""Request-scoped acting party.

Mutating service calls take an explicit ``actor``. Host code that already
knows who is acting for the whole request can bind it once instead; the
binding is a context variable and is mirrored into the structlog context so
every log line of the request carries it.

Usage:
    with bind_actor(user_id):
        await offers.accept(offer_id)   # events attributed to user_id
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_current_actor: contextvars.ContextVar[uuid.UUID | None] = contextvars.ContextVar(
    "current_actor", default=None
)


def current_actor() -> uuid.UUID | None:
    return _current_actor.get()


def resolve_actor(actor: uuid.UUID | None) -> uuid.UUID | None:
    """Explicit actor wins; otherwise the bound one; otherwise the system (None)."""
    return actor if actor is not None else _current_actor.get()


@contextmanager
def bind_actor(actor: uuid.UUID | None) -> Iterator[None]:
    token = _current_actor.set(actor)
    with structlog.contextvars.bound_contextvars(actor_id=str(actor) if actor else None):
        try:
            yield
        finally:
            _current_actor.reset(token)

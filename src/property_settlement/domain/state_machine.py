"""Offer and Transaction state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain
level. A machine is instantiated at the record's current status, the named
event is fired, and the resulting state is what the service persists. An
event that is not in the table for the current state (or whose condition is
false) raises TransitionNotAllowed and nothing is written.

Offer transition table:
    draft                          -> submitted      (submit)
    submitted                      -> viewed         (mark_viewed)
    submitted, viewed              -> accepted       (accept)
    submitted, viewed              -> rejected       (reject)
    submitted, viewed              -> countered      (counter)
    submitted, viewed              -> expired        (expire)
    draft, submitted, viewed,
    countered                      -> withdrawn      (withdraw)

Transaction transition table:
    pending        -> exchanged       (exchange)
    exchanged      -> cooling_off     (start_cooling_off)
    cooling_off    -> unconditional   (go_unconditional)
    exchanged      -> unconditional   (go_unconditional, if cooling-off waived)
    unconditional  -> settling        (start_settling, if conditions satisfied)
    settling       -> settled         (settle)
    unconditional  -> settled         (settle)
    any active     -> fallen_through  (fall_through)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed


class _GuardMachine(StateMachine):
    """Shared construction for machines rebuilt from a persisted status."""

    def __init__(self, current_status: str, **facts: bool) -> None:
        # Facts must exist before super().__init__ evaluates anything
        for name, value in facts.items():
            setattr(self, name, value)
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names declared from the current state."""
        return [event.id for event in self.allowed_events]


class OfferStateMachine(_GuardMachine):
    """Guards the offer negotiation lifecycle.

    Usage:
        sm = OfferStateMachine("submitted")
        sm.accept()
        sm.status  # "accepted"
    """

    # --- States ---
    draft = State(initial=True)
    submitted = State()
    viewed = State()
    countered = State()
    accepted = State(final=True)
    rejected = State(final=True)
    withdrawn = State(final=True)
    expired = State(final=True)

    # --- Events / Transitions ---
    submit = draft.to(submitted)
    mark_viewed = submitted.to(viewed)

    # Seller responses
    accept = submitted.to(accepted) | viewed.to(accepted)
    reject = submitted.to(rejected) | viewed.to(rejected)
    counter = submitted.to(countered) | viewed.to(countered)

    # Exits
    withdraw = withdrawn.from_(draft, submitted, viewed, countered)
    expire = submitted.to(expired) | viewed.to(expired)


class TransactionStateMachine(_GuardMachine):
    """Guards the exchange-to-settlement lifecycle.

    Two facts feed the conditional transitions and are supplied by the
    caller when the machine is built:

        cooling_off_waived    -- the accepted offer waived cooling-off
        conditions_satisfied  -- every condition the offer flagged has been met
    """

    cooling_off_waived = False
    conditions_satisfied = True

    # --- States ---
    pending = State(initial=True)
    exchanged = State()
    cooling_off = State()
    unconditional = State()
    settling = State()
    settled = State(final=True)
    fallen_through = State(final=True)

    # --- Events / Transitions ---
    exchange = pending.to(exchanged)
    start_cooling_off = exchanged.to(cooling_off)
    go_unconditional = cooling_off.to(unconditional) | exchanged.to(
        unconditional, cond="cooling_off_waived"
    )
    start_settling = unconditional.to(settling, cond="conditions_satisfied")
    settle = settling.to(settled) | unconditional.to(settled)

    fall_through = fallen_through.from_(
        pending, exchanged, cooling_off, unconditional, settling
    )


def attempt_transition(machine: _GuardMachine, event_name: str) -> str | None:
    """Fire ``event_name`` on ``machine`` and return the new status.

    Returns None when the table has no matching transition for the current
    state, so callers can turn the refusal into a failed result.

    Raises:
        ValueError: If the machine declares no such event.
    """
    if event_name not in {event.id for event in machine.events}:
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {machine.status}: {machine.get_allowed_events()}"
        )
    try:
        machine.send(event_name)
    except TransitionNotAllowed:
        return None
    return machine.status

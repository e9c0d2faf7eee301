"""Tests for the offer and transaction state machine guards.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. attempt_transition reports refusals as None.
    4. Conditional transitions respect the facts they are built with.
"""

from __future__ import annotations

import warnings

import pytest
from statemachine.exceptions import TransitionNotAllowed

from property_settlement.domain.state_machine import (
    OfferStateMachine,
    TransactionStateMachine,
    attempt_transition,
)


class TestOfferHappyPath:
    def test_submit_view_accept(self) -> None:
        sm = OfferStateMachine("draft")
        sm.submit()
        assert sm.status == "submitted"

        sm.mark_viewed()
        assert sm.status == "viewed"

        sm.accept()
        assert sm.status == "accepted"

    @pytest.mark.parametrize("source", ["submitted", "viewed"])
    @pytest.mark.parametrize(
        ("event", "target"),
        [
            ("accept", "accepted"),
            ("reject", "rejected"),
            ("counter", "countered"),
            ("expire", "expired"),
        ],
    )
    def test_responses_from_active_states(self, source: str, event: str, target: str) -> None:
        assert attempt_transition(OfferStateMachine(source), event) == target

    @pytest.mark.parametrize("source", ["draft", "submitted", "viewed", "countered"])
    def test_withdraw_before_final(self, source: str) -> None:
        assert attempt_transition(OfferStateMachine(source), "withdraw") == "withdrawn"


class TestOfferInvalidTransitions:
    def test_cannot_accept_draft(self) -> None:
        sm = OfferStateMachine("draft")
        with pytest.raises(TransitionNotAllowed):
            sm.accept()

    def test_cannot_view_twice(self) -> None:
        assert attempt_transition(OfferStateMachine("viewed"), "mark_viewed") is None

    def test_countered_cannot_be_answered_again(self) -> None:
        sm = OfferStateMachine("countered")
        for event in ("accept", "reject", "counter", "expire"):
            assert attempt_transition(sm, event) is None

    @pytest.mark.parametrize("final", ["accepted", "rejected", "withdrawn", "expired"])
    def test_finalized_offers_are_absorbing(self, final: str) -> None:
        sm = OfferStateMachine(final)
        assert sm.get_allowed_events() == []
        assert attempt_transition(sm, "withdraw") is None


class TestTransactionHappyPath:
    def test_full_lifecycle(self) -> None:
        sm = TransactionStateMachine("pending")
        for event, expected in [
            ("exchange", "exchanged"),
            ("start_cooling_off", "cooling_off"),
            ("go_unconditional", "unconditional"),
            ("start_settling", "settling"),
            ("settle", "settled"),
        ]:
            assert attempt_transition(sm, event) == expected

    def test_settle_straight_from_unconditional(self) -> None:
        assert attempt_transition(TransactionStateMachine("unconditional"), "settle") == "settled"


class TestTransactionConditionalTransitions:
    def test_exchanged_to_unconditional_requires_waiver(self) -> None:
        assert attempt_transition(TransactionStateMachine("exchanged"), "go_unconditional") is None

        waived = TransactionStateMachine("exchanged", cooling_off_waived=True)
        assert attempt_transition(waived, "go_unconditional") == "unconditional"

    def test_start_settling_blocked_by_outstanding_conditions(self) -> None:
        blocked = TransactionStateMachine("unconditional", conditions_satisfied=False)
        assert attempt_transition(blocked, "start_settling") is None

        clear = TransactionStateMachine("unconditional", conditions_satisfied=True)
        assert attempt_transition(clear, "start_settling") == "settling"

    def test_outstanding_conditions_do_not_block_direct_settle(self) -> None:
        sm = TransactionStateMachine("unconditional", conditions_satisfied=False)
        assert attempt_transition(sm, "settle") == "settled"


class TestTransactionTerminalStates:
    @pytest.mark.parametrize(
        "source", ["pending", "exchanged", "cooling_off", "unconditional", "settling"]
    )
    def test_fall_through_from_any_active_state(self, source: str) -> None:
        assert attempt_transition(TransactionStateMachine(source), "fall_through") == "fallen_through"

    @pytest.mark.parametrize("terminal", ["settled", "fallen_through"])
    def test_terminal_states_absorb(self, terminal: str) -> None:
        sm = TransactionStateMachine(terminal)
        assert sm.get_allowed_events() == []
        for event in ("exchange", "settle", "fall_through", "go_unconditional"):
            assert attempt_transition(sm, event) is None

    def test_cannot_skip_cooling_off_without_waiver(self) -> None:
        assert attempt_transition(TransactionStateMachine("pending"), "settle") is None


class TestConstruction:
    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            OfferStateMachine("haggling")

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            attempt_transition(TransactionStateMachine("pending"), "teleport")

    def test_allowed_events_from_pending(self) -> None:
        events = set(TransactionStateMachine("pending").get_allowed_events())
        assert events == {"exchange", "fall_through"}


class TestStatusReadout:
    def test_status_reads_without_deprecation_warnings(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            sm = OfferStateMachine("submitted")
            sm.send("mark_viewed")
            assert sm.status == "viewed"
            assert TransactionStateMachine("pending").status == "pending"

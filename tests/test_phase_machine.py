"""Tests for the round phase state machine: one-way, no skipping, terminal COMPLETED."""

import pytest

from giftswap.errors import WrongPhase
from giftswap.exchange.phase_machine import RoundPhaseMachine
from giftswap.models.round import RoundPhase


class TestValidTransitions:
    def test_commit_to_senders_determined(self) -> None:
        errors = RoundPhaseMachine.validate_transition(
            RoundPhase.COMMIT, RoundPhase.SENDERS_DETERMINED
        )
        assert errors == []

    def test_senders_determined_to_receivers_disclosed(self) -> None:
        errors = RoundPhaseMachine.validate_transition(
            RoundPhase.SENDERS_DETERMINED, RoundPhase.RECEIVERS_DISCLOSED
        )
        assert errors == []

    def test_receivers_disclosed_to_completed(self) -> None:
        errors = RoundPhaseMachine.validate_transition(
            RoundPhase.RECEIVERS_DISCLOSED, RoundPhase.COMPLETED
        )
        assert errors == []


class TestInvalidTransitions:
    def test_skip_rejected(self) -> None:
        errors = RoundPhaseMachine.validate_transition(
            RoundPhase.COMMIT, RoundPhase.RECEIVERS_DISCLOSED
        )
        assert len(errors) == 1
        assert "Invalid round transition" in errors[0]

    def test_regress_rejected(self) -> None:
        errors = RoundPhaseMachine.validate_transition(
            RoundPhase.RECEIVERS_DISCLOSED, RoundPhase.COMMIT
        )
        assert len(errors) == 1

    def test_completed_to_anything(self) -> None:
        """Terminal phase COMPLETED has no outgoing transitions."""
        for target in RoundPhase:
            errors = RoundPhaseMachine.validate_transition(RoundPhase.COMPLETED, target)
            assert len(errors) == 1, f"COMPLETED -> {target.value} should be invalid"


class TestSequence:
    def test_next_phase_walks_full_sequence(self) -> None:
        phase = RoundPhase.COMMIT
        seen = [phase]
        while not RoundPhaseMachine.is_terminal(phase):
            phase = RoundPhaseMachine.next_phase(phase)
            seen.append(phase)
        assert seen == [
            RoundPhase.COMMIT,
            RoundPhase.SENDERS_DETERMINED,
            RoundPhase.RECEIVERS_DISCLOSED,
            RoundPhase.COMPLETED,
        ]

    def test_only_completed_is_terminal(self) -> None:
        terminal = [p for p in RoundPhase if RoundPhaseMachine.is_terminal(p)]
        assert terminal == [RoundPhase.COMPLETED]


class TestRequire:
    def test_matching_phase_passes(self) -> None:
        RoundPhaseMachine.require(RoundPhase.COMMIT, RoundPhase.COMMIT)

    def test_mismatch_raises_with_actual_phase(self) -> None:
        with pytest.raises(WrongPhase) as excinfo:
            RoundPhaseMachine.require(RoundPhase.COMPLETED, RoundPhase.COMMIT)
        assert excinfo.value.actual == RoundPhase.COMPLETED
        assert excinfo.value.required == RoundPhase.COMMIT
        assert "completed" in str(excinfo.value)

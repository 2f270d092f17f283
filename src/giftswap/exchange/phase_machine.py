"""Round phase state machine: enforces the one-way phase sequence.

Round lifecycle:
    COMMIT -> SENDERS_DETERMINED -> RECEIVERS_DISCLOSED -> COMPLETED

Phase semantics:
- COMMIT: registered participants publish signature commitments.
- SENDERS_DETERMINED: each participant proves a commitment and opens one
  sender slot tagged by a nullifier.
- RECEIVERS_DISCLOSED: each participant claims one sender slot and leaves
  an encrypted payload for its sender.
- COMPLETED: terminal. Advancing further is a no-op.

Fail-closed: there are no implicit transitions and no skipping.
"""

from __future__ import annotations

from typing import Optional

from giftswap.errors import WrongPhase
from giftswap.models.round import RoundPhase


# Valid transitions: {from_phase: allowed_to_phase}
_TRANSITIONS: dict[RoundPhase, Optional[RoundPhase]] = {
    RoundPhase.COMMIT: RoundPhase.SENDERS_DETERMINED,
    RoundPhase.SENDERS_DETERMINED: RoundPhase.RECEIVERS_DISCLOSED,
    RoundPhase.RECEIVERS_DISCLOSED: RoundPhase.COMPLETED,
    # Terminal
    RoundPhase.COMPLETED: None,
}


class RoundPhaseMachine:
    """Validates round phase transitions and phase-gated actions.

    Pure computation: the round applies the phase change and emits the
    audit event.
    """

    @staticmethod
    def validate_transition(current: RoundPhase, target: RoundPhase) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        allowed = _TRANSITIONS.get(current)
        if target != allowed:
            allowed_str = allowed.value if allowed is not None else "none"
            return [
                f"Invalid round transition: {current.value} -> {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def next_phase(current: RoundPhase) -> Optional[RoundPhase]:
        """The single successor of current, or None at the terminal phase."""
        return _TRANSITIONS.get(current)

    @staticmethod
    def is_terminal(phase: RoundPhase) -> bool:
        return _TRANSITIONS.get(phase) is None

    @staticmethod
    def require(current: RoundPhase, required: RoundPhase) -> None:
        """Raise WrongPhase unless current is exactly the required phase."""
        if current != required:
            raise WrongPhase(current, required)

"""Round models: phases and the public sender slots."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class RoundPhase(str, enum.Enum):
    """Gift exchange round phases, in the only order they may occur."""
    COMMIT = "commit"
    SENDERS_DETERMINED = "senders_determined"
    RECEIVERS_DISCLOSED = "receivers_disclosed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class GiftSender:
    """A sender slot opened by a successful determination.

    r is the signature commitment component published with the proof;
    nullifier tags the slot so a receiver can claim it exactly once.
    """
    r: int
    nullifier: int

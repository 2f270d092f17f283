"""Protocol error taxonomy.

Every precondition violation, cryptographic rejection and structural
invariant breach raised by the core is a ProtocolError subclass, so a
caller can distinguish them without parsing messages. Malformed scalar
inputs (a key outside the field, an identity of the wrong width) raise
plain ValueError instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from giftswap.models.round import RoundPhase


class ProtocolError(Exception):
    """Base class for all protocol failures."""


# -- Tree ------------------------------------------------------------------

class KeyAlreadyPresent(ProtocolError):
    """Raised when inserting a key that already occupies a leaf."""

    def __init__(self, key: int) -> None:
        super().__init__(f"Key already present in tree: {key:#066x}")
        self.key = key


class TreeDepthExceeded(ProtocolError):
    """Raised when two keys share every path bit of a fixed-depth tree."""


# -- Registry --------------------------------------------------------------

class NotAdministrator(ProtocolError):
    """Raised when a non-administrator calls an administrative action."""


class TreeFrozen(ProtocolError):
    """Raised when registering into a frozen registry."""


class AlreadyRegistered(ProtocolError):
    """Raised when an identity is registered twice."""


class AlreadyFrozen(ProtocolError):
    """Raised when freezing a registry that is already frozen."""


class NotFrozen(ProtocolError):
    """Raised when unfreezing a registry that is not frozen."""


class RegistryNotFrozen(ProtocolError):
    """Raised when a round is created over a mutable registry."""


# -- Round -----------------------------------------------------------------

class WrongPhase(ProtocolError):
    """Raised when an action is attempted outside its phase."""

    def __init__(self, actual: RoundPhase, required: RoundPhase) -> None:
        super().__init__(
            f"Wrong phase: round is {actual.value}, action requires {required.value}"
        )
        self.actual = actual
        self.required = required


class NotRegistered(ProtocolError):
    """Raised when the caller is absent from the round's participant snapshot."""


class MembershipMismatch(ProtocolError):
    """Raised when a participant leaf stores a value other than the caller's."""


class CommitmentAlreadyUsed(ProtocolError):
    """Raised when an identity commits a second time."""


class InvalidPublicInputs(ProtocolError):
    """Raised when a public-input vector has the wrong shape or width."""


class EventIdMismatch(ProtocolError):
    """Raised when a proof is bound to a different round."""


class ParticipantsRootMismatch(ProtocolError):
    """Raised when a proof references a different participant snapshot."""


class CommitmentsRootMismatch(ProtocolError):
    """Raised when a proof references a stale or foreign commitments root."""


class NullifierAlreadySpent(ProtocolError):
    """Raised when a sender nullifier is determined twice."""


class NullifierAlreadyChosen(ProtocolError):
    """Raised when a sender nullifier is claimed by a second receiver."""


class UnknownNullifier(ProtocolError):
    """Raised when a receiver claims a nullifier no sender determined."""


class AlreadyDisclosed(ProtocolError):
    """Raised when an identity discloses a receiver twice."""


class ReceiverMismatch(ProtocolError):
    """Raised when the address bound in a disclosure proof is not the caller."""


class InvalidProof(ProtocolError):
    """Raised when the proof verifier rejects a proof."""

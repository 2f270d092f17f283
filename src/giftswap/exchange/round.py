"""Gift exchange round: one run of the shuffle protocol.

A round is bound at creation to an immutable snapshot of the participant
registry and owns its own commitments tree plus all nullifier bookkeeping.
Every public action is gated by exactly one phase.

    COMMIT               commit(caller, commitment)
    SENDERS_DETERMINED   determine_sender(proof, public_inputs)
    RECEIVERS_DISCLOSED  disclose_receiver(caller, proof, public_inputs, payload)

Sender public inputs:
    [R, event_hi, event_lo, participants_root, commitments_root, nullifier]
Receiver public inputs:
    [receiver_address_field, event_hi, event_lo, claimed_nullifier]

Each call either applies all of its effects or raises with none applied.
Sender determination records its bookkeeping before consulting the
verifier, so a rejected or failing verification rolls that bookkeeping
back before the error propagates. Likewise, if the audit record cannot be
written, the effects already applied by the call are undone.

The round checks uniqueness and consistency only. Whether the resulting
assignment is a derangement is established inside the proof circuits;
whether every participant finishes is not checked at all.
"""

from __future__ import annotations

import hashlib
from typing import Any, Optional, Sequence

from giftswap.crypto.fields import (
    all_field_elements,
    format_field,
    join_hi_lo_128,
    require_field_element,
)
from giftswap.crypto.hasher import Hasher
from giftswap.crypto.smt import SmtProof, SparseMerkleTree, TreeSnapshot
from giftswap.crypto.verifier import ProofVerifier
from giftswap.errors import (
    AlreadyDisclosed,
    CommitmentAlreadyUsed,
    CommitmentsRootMismatch,
    EventIdMismatch,
    InvalidProof,
    InvalidPublicInputs,
    MembershipMismatch,
    NotAdministrator,
    NotRegistered,
    NullifierAlreadyChosen,
    NullifierAlreadySpent,
    ParticipantsRootMismatch,
    ReceiverMismatch,
    UnknownNullifier,
)
from giftswap.exchange.phase_machine import RoundPhaseMachine
from giftswap.models.identity import Identity
from giftswap.models.round import GiftSender, RoundPhase
from giftswap.persistence.event_log import EventKind, EventLog
from giftswap.policy.params import ProtocolParams

SENDER_INPUT_COUNT = 6
RECEIVER_INPUT_COUNT = 4

ANONYMOUS_ACTOR = "anonymous"


class GiftRound:
    """Phase-gated protocol engine for a single round.

    Usage:
        round_, event_id = factory.create_round(organizer, registry, sv, rv)
        round_.commit(alice, commitment)
        round_.advance(organizer)
        round_.determine_sender(proof, sender_inputs)
        round_.advance(organizer)
        round_.disclose_receiver(alice, proof, receiver_inputs, payload)
        round_.advance(organizer)
    """

    def __init__(
        self,
        address: Identity,
        organizer: Identity,
        event_id: int,
        participants: TreeSnapshot,
        sender_verifier: ProofVerifier,
        receiver_verifier: ProofVerifier,
        hasher: Optional[Hasher] = None,
        commitments_depth: Optional[int] = None,
        params: Optional[ProtocolParams] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        params = params or ProtocolParams()
        if event_id < 0 or event_id >> 256:
            raise ValueError(f"event_id must fit in 256 bits: {event_id!r}")

        self._address = address
        self._organizer = organizer
        self._event_id = event_id
        self._participants = participants
        self._participants_root = participants.root
        self._sender_verifier = sender_verifier
        self._receiver_verifier = receiver_verifier
        self._event_log = event_log

        self._commitments = SparseMerkleTree(
            params.commitments_depth if commitments_depth is None else commitments_depth,
            hasher or participants.hasher,
        )
        self._phase = RoundPhase.COMMIT

        self._commitment_of: dict[Identity, int] = {}
        self._spent_sender_nulls: set[int] = set()
        self._chosen_sender_nulls: set[int] = set()
        self._sender_index_plus1: dict[int, int] = {}
        self._gift_senders: list[GiftSender] = []
        self._receiver_disclosed: set[Identity] = set()
        self._payload_by_nulls: dict[int, bytes] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def address(self) -> Identity:
        return self._address

    @property
    def organizer(self) -> Identity:
        return self._organizer

    @property
    def event_id(self) -> int:
        return self._event_id

    @property
    def phase(self) -> RoundPhase:
        return self._phase

    @property
    def participants_root(self) -> int:
        return self._participants_root

    @property
    def commitments_root(self) -> int:
        return self._commitments.root

    @property
    def commitments_depth(self) -> int:
        return self._commitments.depth

    def commitment_proof(self, commitment: int) -> SmtProof:
        """Commitments-tree proof for a commitment, as fed to the sender circuit."""
        return self._commitments.proof(commitment)

    def has_committed(self, identity: Identity) -> bool:
        return identity in self._commitment_of

    def commitment_of(self, identity: Identity) -> Optional[int]:
        return self._commitment_of.get(identity)

    @property
    def commit_count(self) -> int:
        return len(self._commitment_of)

    def senders_count(self) -> int:
        return len(self._gift_senders)

    def gift_sender(self, index: int) -> GiftSender:
        """Sender slot by 1-based index."""
        if not 1 <= index <= len(self._gift_senders):
            raise IndexError(f"No sender slot at index {index}")
        return self._gift_senders[index - 1]

    def gift_senders(self) -> list[GiftSender]:
        return list(self._gift_senders)

    def sender_index(self, nullifier: int) -> int:
        """1-based slot index for a nullifier, 0 if never determined."""
        return self._sender_index_plus1.get(nullifier, 0)

    def is_nullifier_spent(self, nullifier: int) -> bool:
        return nullifier in self._spent_sender_nulls

    def is_nullifier_chosen(self, nullifier: int) -> bool:
        return nullifier in self._chosen_sender_nulls

    def has_disclosed(self, identity: Identity) -> bool:
        return identity in self._receiver_disclosed

    def get_payload(self, nullifier: int) -> bytes:
        """Encrypted payload left for the holder of nullifier, or b"" if none."""
        return self._payload_by_nulls.get(nullifier, b"")

    def invariant_errors(self) -> list[str]:
        """Check bookkeeping consistency. Returns violations (empty = healthy)."""
        errors: list[str] = []
        if len(self._gift_senders) != len(self._spent_sender_nulls):
            errors.append(
                f"{len(self._gift_senders)} sender slots but "
                f"{len(self._spent_sender_nulls)} spent nullifiers"
            )
        for position, sender in enumerate(self._gift_senders, 1):
            if self._sender_index_plus1.get(sender.nullifier) != position:
                errors.append(f"Sender slot {position} has an inconsistent index")
        stray = self._chosen_sender_nulls - self._spent_sender_nulls
        if stray:
            errors.append(f"{len(stray)} chosen nullifiers were never determined")
        if set(self._payload_by_nulls) != self._chosen_sender_nulls:
            errors.append("Stored payloads do not match chosen nullifiers")
        if len(self._receiver_disclosed) != len(self._chosen_sender_nulls):
            errors.append(
                f"{len(self._receiver_disclosed)} disclosures but "
                f"{len(self._chosen_sender_nulls)} chosen nullifiers"
            )
        return errors

    # ------------------------------------------------------------------
    # Phase control
    # ------------------------------------------------------------------

    def advance(self, caller: Identity) -> RoundPhase:
        """Move to the next phase. A no-op once COMPLETED.

        Returns the phase after the call.
        """
        if caller != self._organizer:
            raise NotAdministrator(f"{caller} is not the round organizer")
        target = RoundPhaseMachine.next_phase(self._phase)
        if target is None:
            return self._phase

        previous = self._phase
        self._phase = target
        try:
            self._emit(
                caller.hex,
                EventKind.PHASE_TRANSITION,
                {"from_phase": previous.value, "to_phase": target.value},
            )
        except Exception:
            self._phase = previous
            raise
        return self._phase

    # ------------------------------------------------------------------
    # COMMIT
    # ------------------------------------------------------------------

    def commit(self, caller: Identity, commitment: int) -> int:
        """Publish the caller's signature commitment. Returns the new root."""
        RoundPhaseMachine.require(self._phase, RoundPhase.COMMIT)
        require_field_element(commitment, "commitment")
        self._require_participant(caller)
        if caller in self._commitment_of:
            raise CommitmentAlreadyUsed(f"{caller} has already committed")

        checkpoint = self._commitments.snapshot()
        # The key's presence is the attested fact; the value repeats it
        self._commitments.insert(commitment, commitment)
        self._commitment_of[caller] = commitment

        root = self._commitments.root
        try:
            self._emit(
                caller.hex,
                EventKind.COMMITMENT_SUBMITTED,
                {
                    "commitment": format_field(commitment),
                    "commitments_root": format_field(root),
                },
            )
        except Exception:
            self._commitments.restore(checkpoint)
            del self._commitment_of[caller]
            raise
        return root

    # ------------------------------------------------------------------
    # SENDERS_DETERMINED
    # ------------------------------------------------------------------

    def determine_sender(self, proof: bytes, public_inputs: Sequence[int]) -> int:
        """Open a sender slot for a proven, unspent nullifier.

        Returns the 1-based index of the new slot.
        """
        RoundPhaseMachine.require(self._phase, RoundPhase.SENDERS_DETERMINED)
        values = _parse_inputs(public_inputs, SENDER_INPUT_COUNT)
        r, event_hi, event_lo, participants_root, commitments_root, nullifier = values

        self._require_event_id(event_hi, event_lo)
        if participants_root != self._participants_root:
            raise ParticipantsRootMismatch(
                f"Proof participants root {format_field(participants_root)} != "
                f"round snapshot {format_field(self._participants_root)}"
            )
        if commitments_root != self._commitments.root:
            raise CommitmentsRootMismatch(
                f"Proof commitments root {format_field(commitments_root)} != "
                f"current {format_field(self._commitments.root)}"
            )
        if nullifier in self._spent_sender_nulls:
            raise NullifierAlreadySpent(
                f"Nullifier already determined: {format_field(nullifier)}"
            )

        self._spent_sender_nulls.add(nullifier)
        self._gift_senders.append(GiftSender(r=r, nullifier=nullifier))
        index = len(self._gift_senders)
        self._sender_index_plus1[nullifier] = index

        try:
            if not self._sender_verifier.verify(proof, tuple(values)):
                raise InvalidProof("Sender proof rejected by verifier")
            self._emit(
                ANONYMOUS_ACTOR,
                EventKind.SENDER_DETERMINED,
                {
                    "index": index,
                    "r": format_field(r),
                    "nullifier": format_field(nullifier),
                },
            )
        except Exception:
            self._undo_sender(nullifier)
            raise
        return index

    def _undo_sender(self, nullifier: int) -> None:
        self._gift_senders.pop()
        del self._sender_index_plus1[nullifier]
        self._spent_sender_nulls.discard(nullifier)

    # ------------------------------------------------------------------
    # RECEIVERS_DISCLOSED
    # ------------------------------------------------------------------

    def disclose_receiver(
        self,
        caller: Identity,
        proof: bytes,
        public_inputs: Sequence[int],
        encrypted_payload: bytes,
    ) -> None:
        """Claim one determined sender slot as the caller's incoming gift."""
        RoundPhaseMachine.require(self._phase, RoundPhase.RECEIVERS_DISCLOSED)
        if not isinstance(encrypted_payload, (bytes, bytearray)):
            raise ValueError("encrypted_payload must be bytes")
        self._require_participant(caller)
        if caller in self._receiver_disclosed:
            raise AlreadyDisclosed(f"{caller} has already disclosed a receiver")

        values = _parse_inputs(public_inputs, RECEIVER_INPUT_COUNT)
        address_field, event_hi, event_lo, nullifier = values

        try:
            receiver = Identity.from_field(address_field)
        except ValueError as exc:
            raise InvalidPublicInputs(str(exc)) from exc
        if receiver != caller:
            raise ReceiverMismatch(f"Proof binds {receiver}, caller is {caller}")

        self._require_event_id(event_hi, event_lo)
        if nullifier in self._chosen_sender_nulls:
            raise NullifierAlreadyChosen(
                f"Nullifier already claimed: {format_field(nullifier)}"
            )
        if self._sender_index_plus1.get(nullifier, 0) == 0:
            raise UnknownNullifier(
                f"Nullifier was never determined: {format_field(nullifier)}"
            )

        if not self._receiver_verifier.verify(proof, tuple(values)):
            raise InvalidProof("Receiver proof rejected by verifier")

        payload = bytes(encrypted_payload)
        self._chosen_sender_nulls.add(nullifier)
        self._receiver_disclosed.add(caller)
        self._payload_by_nulls[nullifier] = payload

        try:
            self._emit(
                caller.hex,
                EventKind.RECEIVER_DISCLOSED,
                {
                    "nullifier": format_field(nullifier),
                    "payload_hash": f"sha256:{hashlib.sha256(payload).hexdigest()}",
                },
            )
        except Exception:
            self._chosen_sender_nulls.discard(nullifier)
            self._receiver_disclosed.discard(caller)
            del self._payload_by_nulls[nullifier]
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_participant(self, identity: Identity) -> None:
        """Check membership against the round's snapshot, not a flag."""
        identity_field = identity.to_field()
        key = self._participants.hasher.hash1(identity_field)
        node = self._participants.lookup(key)
        if not node.is_leaf:
            raise NotRegistered(f"{identity} is not a registered participant")
        if node.value != identity_field:
            raise MembershipMismatch(
                f"Participant leaf for {identity} stores a different identity"
            )

    def _require_event_id(self, event_hi: int, event_lo: int) -> None:
        try:
            event_id = join_hi_lo_128(event_hi, event_lo)
        except ValueError as exc:
            raise InvalidPublicInputs(str(exc)) from exc
        if event_id != self._event_id:
            raise EventIdMismatch(
                f"Proof event id {event_id:#x} != round event id {self._event_id:#x}"
            )

    def _emit(self, actor_id: str, kind: EventKind, payload: dict[str, Any]) -> None:
        if self._event_log is None:
            return
        payload = {"event_id": f"{self._event_id:#066x}", **payload}
        self._event_log.record(kind, actor_id=actor_id, payload=payload)


def _parse_inputs(public_inputs: Sequence[int], expected: int) -> list[int]:
    values = list(public_inputs)
    if len(values) != expected:
        raise InvalidPublicInputs(
            f"Expected {expected} public inputs, got {len(values)}"
        )
    if not all_field_elements(values):
        raise InvalidPublicInputs("Public inputs must all be field elements")
    return values

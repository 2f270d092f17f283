"""Round factory: spawns rounds bound to a frozen registry snapshot.

Each round gets a fresh nonce from the factory. The round address is
derived from the factory address and that nonce, and the round's event id
from the round address and the nonce again. Both are deterministic, and
event ids are unique across every round a factory ever creates.
"""

from __future__ import annotations

import hashlib
from typing import Optional

from giftswap.crypto.fields import format_field
from giftswap.crypto.hasher import Hasher
from giftswap.crypto.verifier import ProofVerifier
from giftswap.errors import RegistryNotFrozen
from giftswap.exchange.round import GiftRound
from giftswap.models.identity import IDENTITY_BYTES, Identity
from giftswap.participants.registry import Registry
from giftswap.persistence.event_log import EventKind, EventLog
from giftswap.policy.params import ProtocolParams


def derive_round_address(factory: Identity, nonce: int) -> Identity:
    digest = hashlib.sha256(b"round" + factory.raw + nonce.to_bytes(32, "big")).digest()
    return Identity(digest[-IDENTITY_BYTES:])


def derive_event_id(round_address: Identity, nonce: int) -> int:
    digest = hashlib.sha256(round_address.raw + nonce.to_bytes(32, "big")).digest()
    return int.from_bytes(digest, byteorder="big")


class RoundFactory:
    """Creates gift exchange rounds.

    Usage:
        factory = RoundFactory(Identity.from_hex("0x" + "fa" * 20))
        round_, event_id = factory.create_round(
            organizer, registry, sender_verifier, receiver_verifier
        )
    """

    def __init__(
        self,
        address: Identity,
        params: Optional[ProtocolParams] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._address = address
        self._params = params or ProtocolParams()
        self._event_log = event_log
        self._nonce = 0
        self._rounds: list[GiftRound] = []

    @property
    def address(self) -> Identity:
        return self._address

    @property
    def nonce(self) -> int:
        return self._nonce

    @property
    def round_count(self) -> int:
        return len(self._rounds)

    def rounds(self) -> list[GiftRound]:
        return list(self._rounds)

    def create_round(
        self,
        caller: Identity,
        registry: Registry,
        sender_verifier: ProofVerifier,
        receiver_verifier: ProofVerifier,
        hasher: Optional[Hasher] = None,
        commitments_depth: Optional[int] = None,
    ) -> tuple[GiftRound, int]:
        """Create a round organized by caller over the registry's frozen root.

        Raises RegistryNotFrozen if the registry is still mutable.
        """
        if not registry.frozen:
            raise RegistryNotFrozen("Registry must be frozen before creating a round")

        nonce = self._nonce + 1
        round_address = derive_round_address(self._address, nonce)
        event_id = derive_event_id(round_address, nonce)

        round_ = GiftRound(
            address=round_address,
            organizer=caller,
            event_id=event_id,
            participants=registry.snapshot(),
            sender_verifier=sender_verifier,
            receiver_verifier=receiver_verifier,
            hasher=hasher,
            commitments_depth=commitments_depth,
            params=self._params,
            event_log=self._event_log,
        )
        if self._event_log is not None:
            self._event_log.record(
                EventKind.ROUND_CREATED,
                actor_id=caller.hex,
                payload={
                    "round": round_address.hex,
                    "event_id": f"{event_id:#066x}",
                    "nonce": nonce,
                    "participants_root": format_field(round_.participants_root),
                    "commitments_depth": round_.commitments_depth,
                },
            )
        self._nonce = nonce
        self._rounds.append(round_)
        return round_, event_id

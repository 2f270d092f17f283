"""Participant registry: the long-lived tree of eligible identities.

Each registered identity becomes one leaf:
    key   = hash1(identity_field)
    value = identity_field

Lifecycle:
    OPEN (mutable) -> FROZEN (immutable), reversible by the administrator
    through unfreeze for corrections. Rounds never hold a live reference:
    the factory takes a snapshot at creation, so later unfreeze/register
    cycles cannot move the participant root of an in-flight round.

The registry is a pure state holder plus audit emission. It performs no
proof verification of its own.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from giftswap.crypto.fields import format_field
from giftswap.crypto.hasher import Hasher
from giftswap.crypto.smt import LookupResult, SmtProof, SparseMerkleTree, TreeSnapshot
from giftswap.errors import (
    AlreadyFrozen,
    AlreadyRegistered,
    NotAdministrator,
    NotFrozen,
    TreeFrozen,
)
from giftswap.models.identity import Identity
from giftswap.persistence.event_log import EventKind, EventLog
from giftswap.policy.params import ProtocolParams


class Registry:
    """Append-only registry of protocol participants.

    Usage:
        registry = Registry(admin)
        registry.register_batch(admin, [alice, bob, carol])
        registry.freeze(admin)
        proof = registry.proof_for(alice)
    """

    def __init__(
        self,
        admin: Identity,
        depth: Optional[int] = None,
        hasher: Optional[Hasher] = None,
        params: Optional[ProtocolParams] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        params = params or ProtocolParams()
        self._admin = admin
        self._tree = SparseMerkleTree(
            params.registry_depth if depth is None else depth, hasher
        )
        self._frozen = False
        self._registered: set[Identity] = set()
        self._order: list[Identity] = []
        self._event_log = event_log

    @classmethod
    def from_records(
        cls,
        records: dict[str, Any],
        hasher: Optional[Hasher] = None,
        event_log: Optional[EventLog] = None,
    ) -> Registry:
        """Restore a registry from to_records() output.

        Identities are re-inserted in their original order without emitting
        events; the rebuilt root equals the persisted one.
        """
        registry = cls(
            Identity.from_hex(records["admin"]),
            depth=records["depth"],
            hasher=hasher,
            event_log=event_log,
        )
        for hex_id in records.get("identities", []):
            registry._insert(Identity.from_hex(hex_id))
        registry._frozen = bool(records.get("frozen", False))
        return registry

    def to_records(self) -> dict[str, Any]:
        return {
            "admin": self._admin.hex,
            "depth": self._tree.depth,
            "frozen": self._frozen,
            "identities": [i.hex for i in self._order],
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def admin(self) -> Identity:
        return self._admin

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def depth(self) -> int:
        return self._tree.depth

    @property
    def hasher(self) -> Hasher:
        return self._tree.hasher

    @property
    def root(self) -> int:
        return self._tree.root

    @property
    def count(self) -> int:
        return len(self._order)

    def identities(self) -> list[Identity]:
        """Registered identities in registration order."""
        return list(self._order)

    def key_for(self, identity: Identity) -> int:
        return self._tree.hasher.hash1(identity.to_field())

    def is_registered(self, identity: Identity) -> bool:
        return identity in self._registered

    def membership_node(self, identity: Identity) -> LookupResult:
        """Tree node for the identity's key: LEAF with its value, or EMPTY."""
        return self._tree.lookup(self.key_for(identity))

    def proof_for(self, identity: Identity) -> SmtProof:
        return self._tree.proof(self.key_for(identity))

    def snapshot(self) -> TreeSnapshot:
        return self._tree.snapshot()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register(self, caller: Identity, identity: Identity) -> None:
        """Register one identity. Fails if frozen or already registered."""
        self._require_admin(caller)
        self._require_open()
        if identity in self._registered:
            raise AlreadyRegistered(f"Identity already registered: {identity}")
        checkpoint = self._tree.snapshot()
        self._insert(identity)
        try:
            self._emit(
                caller,
                EventKind.PARTICIPANT_REGISTERED,
                self._registered_payload(identity, self.root),
            )
        except Exception:
            self._rollback(checkpoint, [identity])
            raise

    def register_batch(self, caller: Identity, identities: Iterable[Identity]) -> None:
        """Register several identities, all or nothing.

        Duplicates, whether against the registry or within the batch,
        reject the whole batch before any insertion. A structural failure
        or a failed audit write restores the registry to its prior state.
        """
        self._require_admin(caller)
        self._require_open()
        batch = list(identities)
        seen: set[Identity] = set()
        for identity in batch:
            if identity in self._registered or identity in seen:
                raise AlreadyRegistered(f"Identity already registered: {identity}")
            seen.add(identity)

        checkpoint = self._tree.snapshot()
        inserted: list[Identity] = []
        entries: list[tuple[EventKind, str, dict[str, Any]]] = []
        try:
            for identity in batch:
                self._insert(identity)
                inserted.append(identity)
                entries.append(
                    (
                        EventKind.PARTICIPANT_REGISTERED,
                        caller.hex,
                        self._registered_payload(identity, self.root),
                    )
                )
            if self._event_log is not None:
                self._event_log.record_batch(entries)
        except Exception:
            self._rollback(checkpoint, inserted)
            raise

    def freeze(self, caller: Identity) -> None:
        self._require_admin(caller)
        if self._frozen:
            raise AlreadyFrozen("Registry is already frozen")
        self._set_frozen(caller, True, EventKind.REGISTRY_FROZEN)

    def unfreeze(self, caller: Identity) -> None:
        self._require_admin(caller)
        if not self._frozen:
            raise NotFrozen("Registry is not frozen")
        self._set_frozen(caller, False, EventKind.REGISTRY_UNFROZEN)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(self, identity: Identity) -> None:
        self._tree.insert(self.key_for(identity), identity.to_field())
        self._registered.add(identity)
        self._order.append(identity)

    def _require_admin(self, caller: Identity) -> None:
        if caller != self._admin:
            raise NotAdministrator(f"{caller} is not the registry administrator")

    def _require_open(self) -> None:
        if self._frozen:
            raise TreeFrozen("Registry is frozen")

    def _rollback(self, checkpoint: TreeSnapshot, inserted: list[Identity]) -> None:
        self._tree.restore(checkpoint)
        for identity in inserted:
            self._registered.discard(identity)
        if inserted:
            del self._order[-len(inserted):]

    def _set_frozen(self, caller: Identity, frozen: bool, kind: EventKind) -> None:
        self._frozen = frozen
        try:
            self._emit(caller, kind, {"root": format_field(self.root)})
        except Exception:
            self._frozen = not frozen
            raise

    def _registered_payload(self, identity: Identity, root: int) -> dict[str, Any]:
        return {
            "identity": identity.hex,
            "key": format_field(self.key_for(identity)),
            "root": format_field(root),
        }

    def _emit(self, caller: Identity, kind: EventKind, payload: dict[str, Any]) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id=caller.hex, payload=payload)

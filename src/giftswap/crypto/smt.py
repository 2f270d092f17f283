"""Sparse Merkle tree with fixed depth and content-derived layout.

Node hashing:
    EMPTY     -> 0
    LEAF      -> hash3(key, value, 1)
    INTERNAL  -> hash2(left_hash, right_hash)

The path of a key is its little-endian bit decomposition: at depth i the
walk goes right when (key >> i) & 1 is set. A leaf sits at the shallowest
depth where its path prefix is unique among inserted keys. When a new key
meets an existing leaf, both are pushed down to the first bit where they
differ, with EMPTY siblings along the shared stretch. That layout depends
only on the key set, so the root is independent of insertion order.

Storage is an append-only arena of immutable nodes addressed by index.
Every insert allocates a fresh path and a new root index; nodes reachable
from an older root are never touched, which makes snapshots free and
permanently valid.

Proofs carry exactly `depth` siblings ordered root to leaf, zero padded,
plus the effective depth (how many of them the walk actually used), so
fixed-width circuits can consume variable-length paths.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from giftswap.crypto.fields import is_field_element, require_field_element
from giftswap.crypto.hasher import DEFAULT_HASHER, Hasher
from giftswap.errors import KeyAlreadyPresent, TreeDepthExceeded

EMPTY_HASH = 0
LEAF_MARKER = 1
MAX_DEPTH = 254  # key bits available below FIELD_MODULUS

_EMPTY_INDEX = 0


class NodeKind(str, enum.Enum):
    EMPTY = "empty"
    LEAF = "leaf"
    INTERNAL = "internal"


@dataclass(frozen=True)
class _Node:
    kind: NodeKind
    hash: int
    key: int = 0
    value: int = 0
    left: int = _EMPTY_INDEX
    right: int = _EMPTY_INDEX


@dataclass(frozen=True)
class LookupResult:
    """Classification of the node a key resolves to."""
    kind: NodeKind  # EMPTY or LEAF
    value: Optional[int] = None

    @property
    def is_leaf(self) -> bool:
        return self.kind == NodeKind.LEAF


@dataclass(frozen=True)
class SmtProof:
    """Inclusion or exclusion proof for one key.

    For a non-membership proof whose walk ends on another key's leaf,
    matching_entry holds that leaf's (key, value) so the root can still be
    recomputed. If the walk ends on an empty slot, matching_entry is None.
    """
    root: int
    key: int
    value: Optional[int]
    membership: bool
    siblings: tuple[int, ...]
    effective_depth: int
    matching_entry: Optional[tuple[int, int]] = None

    @property
    def depth(self) -> int:
        return len(self.siblings)


def path_bit(key: int, depth: int) -> int:
    return (key >> depth) & 1


def verify_proof(proof: SmtProof, hasher: Optional[Hasher] = None) -> bool:
    """Recompute the root from a proof and compare it with proof.root."""
    hasher = hasher or DEFAULT_HASHER
    effective = proof.effective_depth
    if not 0 <= effective <= proof.depth:
        return False
    if any(s != EMPTY_HASH for s in proof.siblings[effective:]):
        return False

    if proof.membership:
        if proof.value is None:
            return False
        node = hasher.hash3(proof.key, proof.value, LEAF_MARKER)
    elif proof.matching_entry is not None:
        other_key, other_value = proof.matching_entry
        if other_key == proof.key:
            return False
        # The other leaf must sit on the queried key's path
        for d in range(effective):
            if path_bit(other_key, d) != path_bit(proof.key, d):
                return False
        node = hasher.hash3(other_key, other_value, LEAF_MARKER)
    else:
        node = EMPTY_HASH

    for d in reversed(range(effective)):
        sibling = proof.siblings[d]
        if path_bit(proof.key, d):
            node = hasher.hash2(sibling, node)
        else:
            node = hasher.hash2(node, sibling)
    return node == proof.root


class _TreeReader:
    """Read operations shared by the live tree and its snapshots."""

    def __init__(
        self,
        arena: list[_Node],
        root_index: int,
        depth: int,
        hasher: Hasher,
        size: int,
    ) -> None:
        self._arena = arena
        self._root_index = root_index
        self._depth = depth
        self._hasher = hasher
        self._size = size

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def hasher(self) -> Hasher:
        return self._hasher

    @property
    def root(self) -> int:
        return self._arena[self._root_index].hash

    def __len__(self) -> int:
        return self._size

    def __contains__(self, key: object) -> bool:
        return is_field_element(key) and self.has(key)

    def has(self, key: int) -> bool:
        """True if key occupies a leaf."""
        return self.lookup(key).is_leaf

    def lookup(self, key: int) -> LookupResult:
        """Resolve a key to EMPTY or to the LEAF holding it (with its value)."""
        require_field_element(key, "key")
        terminal, _, _ = self._descend(key)
        node = self._arena[terminal]
        if node.kind == NodeKind.LEAF and node.key == key:
            return LookupResult(kind=NodeKind.LEAF, value=node.value)
        return LookupResult(kind=NodeKind.EMPTY)

    def proof(self, key: int) -> SmtProof:
        """Build a membership or non-membership proof for key."""
        require_field_element(key, "key")
        terminal, siblings, _ = self._descend(key)
        node = self._arena[terminal]
        effective = len(siblings)
        padded = tuple(siblings) + (EMPTY_HASH,) * (self._depth - effective)

        if node.kind == NodeKind.LEAF and node.key == key:
            return SmtProof(
                root=self.root,
                key=key,
                value=node.value,
                membership=True,
                siblings=padded,
                effective_depth=effective,
            )
        matching = (node.key, node.value) if node.kind == NodeKind.LEAF else None
        return SmtProof(
            root=self.root,
            key=key,
            value=None,
            membership=False,
            siblings=padded,
            effective_depth=effective,
            matching_entry=matching,
        )

    def _descend(self, key: int) -> tuple[int, list[int], list[tuple[int, int]]]:
        """Walk from the root until a non-internal node.

        Returns (terminal index, sibling hashes root to leaf,
        [(internal node index, bit taken), ...]).
        """
        nodes = self._arena
        index = self._root_index
        siblings: list[int] = []
        path: list[tuple[int, int]] = []
        for d in range(self._depth):
            node = nodes[index]
            if node.kind != NodeKind.INTERNAL:
                break
            bit = path_bit(key, d)
            path.append((index, bit))
            if bit:
                siblings.append(nodes[node.left].hash)
                index = node.right
            else:
                siblings.append(nodes[node.right].hash)
                index = node.left
        if nodes[index].kind == NodeKind.INTERNAL:
            raise TreeDepthExceeded(
                f"Internal node found below maximum depth {self._depth}"
            )
        return index, siblings, path


class TreeSnapshot(_TreeReader):
    """Read-only view of a tree as of one root.

    Shares the arena with the live tree; later inserts allocate new
    nodes and never alter what this root reaches.
    """


class SparseMerkleTree(_TreeReader):
    """Append-only fixed-depth sparse Merkle tree.

    Usage:
        tree = SparseMerkleTree(depth=20)
        tree.insert(key, value)
        root = tree.root
        proof = tree.proof(key)
        assert verify_proof(proof)
        frozen_view = tree.snapshot()
    """

    def __init__(self, depth: int, hasher: Optional[Hasher] = None) -> None:
        if not isinstance(depth, int) or not 1 <= depth <= MAX_DEPTH:
            raise ValueError(f"Tree depth must be in [1, {MAX_DEPTH}], got {depth!r}")
        arena = [_Node(kind=NodeKind.EMPTY, hash=EMPTY_HASH)]
        super().__init__(arena, _EMPTY_INDEX, depth, hasher or DEFAULT_HASHER, 0)

    def snapshot(self) -> TreeSnapshot:
        """Freeze the current root into an independent read-only view."""
        return TreeSnapshot(
            self._arena, self._root_index, self._depth, self._hasher, self._size
        )

    def restore(self, snapshot: TreeSnapshot) -> None:
        """Reset the live root to an earlier snapshot of this same tree.

        Used to undo a partially applied batch. Nodes allocated since the
        snapshot stay in the arena but become unreachable.
        """
        if snapshot._arena is not self._arena:
            raise ValueError("Snapshot does not belong to this tree")
        self._root_index = snapshot._root_index
        self._size = snapshot._size

    def insert(self, key: int, value: int) -> None:
        """Insert a new entry. Raises KeyAlreadyPresent if key exists.

        On any failure the root is left unchanged.
        """
        require_field_element(key, "key")
        require_field_element(value, "value")

        terminal, _, path = self._descend(key)
        existing = self._arena[terminal]

        if existing.kind == NodeKind.LEAF:
            if existing.key == key:
                raise KeyAlreadyPresent(key)
            subtree = self._push_down(terminal, existing.key, key, value, len(path))
        else:
            subtree = self._new_leaf(key, value)

        index = subtree
        for parent_index, bit in reversed(path):
            parent = self._arena[parent_index]
            if bit:
                index = self._new_internal(parent.left, index)
            else:
                index = self._new_internal(index, parent.right)

        self._root_index = index
        self._size += 1

    def _push_down(
        self,
        existing_index: int,
        existing_key: int,
        key: int,
        value: int,
        start: int,
    ) -> int:
        """Split a slot held by one leaf into a subtree holding both keys."""
        split = start
        while split < self._depth and path_bit(key, split) == path_bit(existing_key, split):
            split += 1
        if split >= self._depth:
            raise TreeDepthExceeded(
                f"Keys {key:#x} and {existing_key:#x} share all {self._depth} path bits"
            )

        leaf = self._new_leaf(key, value)
        if path_bit(key, split):
            index = self._new_internal(existing_index, leaf)
        else:
            index = self._new_internal(leaf, existing_index)

        for d in range(split - 1, start - 1, -1):
            if path_bit(key, d):
                index = self._new_internal(_EMPTY_INDEX, index)
            else:
                index = self._new_internal(index, _EMPTY_INDEX)
        return index

    def _new_leaf(self, key: int, value: int) -> int:
        node = _Node(
            kind=NodeKind.LEAF,
            hash=self._hasher.hash3(key, value, LEAF_MARKER),
            key=key,
            value=value,
        )
        self._arena.append(node)
        return len(self._arena) - 1

    def _new_internal(self, left: int, right: int) -> int:
        node = _Node(
            kind=NodeKind.INTERNAL,
            hash=self._hasher.hash2(self._arena[left].hash, self._arena[right].hash),
            left=left,
            right=right,
        )
        self._arena.append(node)
        return len(self._arena) - 1

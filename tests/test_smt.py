"""Tests for the sparse Merkle tree: determinism, proofs, snapshots."""

import itertools

import pytest

from giftswap.crypto.fields import FIELD_MODULUS
from giftswap.crypto.hasher import DEFAULT_HASHER
from giftswap.crypto.smt import (
    EMPTY_HASH,
    NodeKind,
    SparseMerkleTree,
    verify_proof,
)
from giftswap.errors import KeyAlreadyPresent, TreeDepthExceeded


def _leaf_hash(key: int, value: int) -> int:
    return DEFAULT_HASHER.hash3(key, value, 1)


def _field_keys(count: int) -> list[int]:
    return [DEFAULT_HASHER.hash1(i + 1) for i in range(count)]


class TestEmptyAndSingleLeaf:
    def test_empty_root_is_zero(self) -> None:
        tree = SparseMerkleTree(depth=20)
        assert tree.root == EMPTY_HASH
        assert len(tree) == 0

    def test_single_leaf_root_is_leaf_hash(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(5, 50)
        assert tree.root == _leaf_hash(5, 50)
        assert len(tree) == 1

    def test_rejects_invalid_depth(self) -> None:
        with pytest.raises(ValueError, match="depth"):
            SparseMerkleTree(depth=0)
        with pytest.raises(ValueError, match="depth"):
            SparseMerkleTree(depth=255)

    def test_rejects_non_field_key(self) -> None:
        tree = SparseMerkleTree(depth=20)
        with pytest.raises(ValueError, match="key"):
            tree.insert(FIELD_MODULUS, 1)
        with pytest.raises(ValueError, match="key"):
            tree.insert(-1, 1)

    def test_rejects_non_field_value(self) -> None:
        tree = SparseMerkleTree(depth=20)
        with pytest.raises(ValueError, match="value"):
            tree.insert(1, FIELD_MODULUS)


class TestDeterminism:
    def test_root_independent_of_insertion_order(self) -> None:
        keys = _field_keys(5)
        roots = set()
        for ordering in itertools.permutations(keys):
            tree = SparseMerkleTree(depth=20)
            for key in ordering:
                tree.insert(key, key)
            roots.add(tree.root)
        assert len(roots) == 1

    def test_shared_prefix_keys_order_independent(self) -> None:
        """Keys sharing low bits force push-down; layout stays canonical."""
        keys = [0b0001, 0b1001, 0b0011, 0b10001]
        expected = None
        for ordering in itertools.permutations(keys):
            tree = SparseMerkleTree(depth=8)
            for key in ordering:
                tree.insert(key, key * 10)
            if expected is None:
                expected = tree.root
            assert tree.root == expected

    def test_different_values_different_roots(self) -> None:
        tree1 = SparseMerkleTree(depth=20)
        tree1.insert(7, 1)
        tree2 = SparseMerkleTree(depth=20)
        tree2.insert(7, 2)
        assert tree1.root != tree2.root


class TestInsert:
    def test_duplicate_key_rejected_root_unchanged(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(3, 3)
        tree.insert(4, 4)
        root = tree.root
        with pytest.raises(KeyAlreadyPresent):
            tree.insert(3, 99)
        assert tree.root == root
        assert len(tree) == 2

    def test_depth_exceeded_when_all_path_bits_collide(self) -> None:
        tree = SparseMerkleTree(depth=4)
        tree.insert(1, 1)
        root = tree.root
        # 17 = 0b10001 agrees with 1 on bits 0..3
        with pytest.raises(TreeDepthExceeded):
            tree.insert(17, 17)
        assert tree.root == root
        assert len(tree) == 1
        assert 17 not in tree

    def test_keys_diverging_at_last_level_fit(self) -> None:
        tree = SparseMerkleTree(depth=4)
        tree.insert(0b0001, 1)
        tree.insert(0b1001, 2)
        proof = tree.proof(0b1001)
        assert proof.effective_depth == 4
        assert verify_proof(proof)


class TestLookup:
    def test_lookup_leaf_returns_value(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(11, 1100)
        result = tree.lookup(11)
        assert result.kind == NodeKind.LEAF
        assert result.is_leaf
        assert result.value == 1100

    def test_lookup_absent_is_empty(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(11, 1100)
        result = tree.lookup(12)
        assert result.kind == NodeKind.EMPTY
        assert result.value is None

    def test_contains(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(11, 1100)
        assert 11 in tree
        assert 12 not in tree
        assert "11" not in tree


class TestProofs:
    def test_membership_proof_verifies(self) -> None:
        tree = SparseMerkleTree(depth=20)
        for key in _field_keys(8):
            tree.insert(key, key)
        target = _field_keys(8)[3]
        proof = tree.proof(target)
        assert proof.membership is True
        assert proof.value == target
        assert proof.root == tree.root
        assert proof.depth == 20
        assert verify_proof(proof)

    def test_siblings_padded_and_effective_depth(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)  # bits: 1, 0, ...
        tree.insert(3, 30)  # bits: 1, 1, ...
        proof = tree.proof(1)
        # depth 0: right branch taken, left sibling empty
        # depth 1: left branch taken, sibling is leaf 3
        assert proof.effective_depth == 2
        assert proof.siblings[:2] == (EMPTY_HASH, _leaf_hash(3, 30))
        assert proof.siblings[2:] == (EMPTY_HASH,) * 18
        assert verify_proof(proof)

    def test_effective_depth_is_last_nonzero_sibling(self) -> None:
        tree = SparseMerkleTree(depth=20)
        for key in _field_keys(16):
            tree.insert(key, 1)
        for key in _field_keys(16):
            proof = tree.proof(key)
            nonzero = [i for i, s in enumerate(proof.siblings) if s != EMPTY_HASH]
            assert proof.effective_depth == nonzero[-1] + 1

    def test_non_membership_ending_on_empty(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        tree.insert(3, 30)
        proof = tree.proof(0)  # bit 0 = 0: empty left subtree
        assert proof.membership is False
        assert proof.matching_entry is None
        assert proof.effective_depth == 1
        assert verify_proof(proof)

    def test_non_membership_ending_on_other_leaf(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        proof = tree.proof(2)
        assert proof.membership is False
        assert proof.matching_entry == (1, 10)
        assert proof.effective_depth == 0
        assert verify_proof(proof)

    def test_empty_tree_non_membership(self) -> None:
        tree = SparseMerkleTree(depth=20)
        proof = tree.proof(42)
        assert proof.membership is False
        assert verify_proof(proof)

    def test_tampered_value_fails(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        tree.insert(3, 30)
        proof = tree.proof(3)
        forged = type(proof)(
            root=proof.root,
            key=proof.key,
            value=31,
            membership=True,
            siblings=proof.siblings,
            effective_depth=proof.effective_depth,
        )
        assert not verify_proof(forged)

    def test_claiming_membership_for_absent_key_fails(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        tree.insert(3, 30)
        proof = tree.proof(5)
        forged = type(proof)(
            root=proof.root,
            key=5,
            value=50,
            membership=True,
            siblings=proof.siblings,
            effective_depth=proof.effective_depth,
        )
        assert not verify_proof(forged)

    def test_nonzero_padding_fails(self) -> None:
        tree = SparseMerkleTree(depth=8)
        tree.insert(1, 10)
        tree.insert(3, 30)
        proof = tree.proof(1)
        siblings = list(proof.siblings)
        siblings[-1] = 123
        forged = type(proof)(
            root=proof.root,
            key=proof.key,
            value=proof.value,
            membership=True,
            siblings=tuple(siblings),
            effective_depth=proof.effective_depth,
        )
        assert not verify_proof(forged)


class TestSnapshots:
    def test_snapshot_unaffected_by_later_inserts(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        snap = tree.snapshot()
        tree.insert(3, 30)
        assert snap.root == _leaf_hash(1, 10)
        assert snap.lookup(3).kind == NodeKind.EMPTY
        assert tree.lookup(3).value == 30
        assert len(snap) == 1
        assert verify_proof(snap.proof(1))

    def test_restore_rolls_back_root(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        checkpoint = tree.snapshot()
        tree.insert(3, 30)
        tree.restore(checkpoint)
        assert tree.root == checkpoint.root
        assert len(tree) == 1
        assert 3 not in tree
        tree.insert(3, 30)
        assert 3 in tree

    def test_restore_rejects_foreign_snapshot(self) -> None:
        tree = SparseMerkleTree(depth=20)
        other = SparseMerkleTree(depth=20)
        with pytest.raises(ValueError, match="does not belong"):
            tree.restore(other.snapshot())


class TestMembershipChecks:
    def test_has(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(11, 1100)
        snap = tree.snapshot()
        tree.insert(12, 1200)
        assert tree.has(11)
        assert tree.has(12)
        assert snap.has(11)
        assert not snap.has(12)

    def test_has_rejects_non_field_key(self) -> None:
        tree = SparseMerkleTree(depth=20)
        with pytest.raises(ValueError, match="key"):
            tree.has(FIELD_MODULUS)

    def test_bool_is_never_contained(self) -> None:
        tree = SparseMerkleTree(depth=20)
        tree.insert(1, 10)
        tree.insert(0, 5)
        assert True not in tree
        assert False not in tree
        assert 1 in tree

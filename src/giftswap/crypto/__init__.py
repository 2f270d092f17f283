"""Cryptographic primitives: field encoding, hashing, sparse Merkle trees, verifiers."""

from giftswap.crypto.fields import FIELD_MODULUS
from giftswap.crypto.hasher import DEFAULT_HASHER, Hasher, Sha256FieldHasher
from giftswap.crypto.smt import SparseMerkleTree, TreeSnapshot, verify_proof
from giftswap.crypto.verifier import PredicateVerifier, ProofVerifier

__all__ = [
    "FIELD_MODULUS",
    "DEFAULT_HASHER",
    "Hasher",
    "Sha256FieldHasher",
    "SparseMerkleTree",
    "TreeSnapshot",
    "verify_proof",
    "PredicateVerifier",
    "ProofVerifier",
]

"""Participant registry: eligible identities in a freezable sparse Merkle tree."""

from giftswap.participants.registry import Registry

__all__ = ["Registry"]

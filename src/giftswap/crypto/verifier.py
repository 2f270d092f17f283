"""Proof verifier boundary.

The round engine never inspects proofs. It hands (proof bytes, public
inputs) to an injected verifier and trusts the boolean verdict. One
verifier checks sender-determination proofs (6 public inputs), another
checks receiver-disclosure proofs (4 public inputs).
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence


class ProofVerifier(Protocol):
    """Deterministic, side-effect-free proof oracle."""

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool: ...


class PredicateVerifier:
    """Adapts a plain callable into a ProofVerifier.

    Usage:
        verifier = PredicateVerifier(lambda proof, inputs: proof == b"ok")
    """

    def __init__(self, predicate: Callable[[bytes, Sequence[int]], bool]) -> None:
        self._predicate = predicate

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        return bool(self._predicate(proof, tuple(public_inputs)))

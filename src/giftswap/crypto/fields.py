"""Field arithmetic helpers and public-input encoding.

All tree keys, tree values, commitments, nullifiers and public inputs are
elements of the BN254 scalar field. The round's 256-bit event id does not
fit in one element, so it travels as two 128-bit limbs (hi, lo).

The derive_* helpers mirror how the off-chain tooling turns an ECDSA
signature over (address || event_id) into a commitment and a sender
nullifier. Producing the signature itself is not part of this package.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from giftswap.crypto.hasher import Hasher
    from giftswap.models.identity import Identity


# BN254 scalar field modulus
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

LIMB_BITS = 128
_LIMB_MASK = (1 << LIMB_BITS) - 1


def to_field(value: int) -> int:
    """Reduce an arbitrary integer into [0, FIELD_MODULUS)."""
    return value % FIELD_MODULUS


def is_field_element(value: object) -> bool:
    # bool is an int subclass; a flag is never a field element
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def require_field_element(value: object, label: str = "value") -> int:
    """Return value unchanged if it is a field element, else raise ValueError."""
    if not is_field_element(value):
        raise ValueError(f"{label} is not a field element: {value!r}")
    return value  # type: ignore[return-value]


def split_hi_lo_128(value: int) -> tuple[int, int]:
    """Split a 256-bit integer into (hi, lo) 128-bit limbs."""
    if value < 0 or value >> (2 * LIMB_BITS):
        raise ValueError(f"Value does not fit in 256 bits: {value!r}")
    return value >> LIMB_BITS, value & _LIMB_MASK


def join_hi_lo_128(hi: int, lo: int) -> int:
    """Join two 128-bit limbs. Raises ValueError if either limb overflows."""
    for label, limb in (("hi", hi), ("lo", lo)):
        if limb < 0 or limb >> LIMB_BITS:
            raise ValueError(f"{label} limb exceeds {LIMB_BITS} bits: {limb!r}")
    return (hi << LIMB_BITS) | lo


def derive_commitment(sig_r: int, sig_s: int, hasher: Hasher) -> int:
    """Commitment published during COMMIT: hash2(r, s) over the field."""
    return hasher.hash2(to_field(sig_r), to_field(sig_s))


def derive_nullifier(sig_s: int, hasher: Hasher) -> int:
    """Sender nullifier: hash1(s) over the field."""
    return hasher.hash1(to_field(sig_s))


def sender_public_inputs(
    r: int,
    event_id: int,
    participants_root: int,
    commitments_root: int,
    nullifier: int,
) -> list[int]:
    """Public inputs of a sender-determination proof, in circuit order.

    [R, event_hi, event_lo, participants_root, commitments_root, nullifier]
    """
    hi, lo = split_hi_lo_128(event_id)
    return [r, hi, lo, participants_root, commitments_root, nullifier]


def receiver_public_inputs(
    receiver: Identity,
    event_id: int,
    claimed_nullifier: int,
) -> list[int]:
    """Public inputs of a receiver-disclosure proof, in circuit order.

    [receiver_address_field, event_hi, event_lo, claimed_nullifier]
    """
    hi, lo = split_hi_lo_128(event_id)
    return [receiver.to_field(), hi, lo, claimed_nullifier]


def format_field(value: int) -> str:
    """Render a field element as 0x-prefixed, zero-padded hex for event payloads."""
    return f"{value:#066x}"


def all_field_elements(values: Sequence[object]) -> bool:
    return all(is_field_element(v) for v in values)

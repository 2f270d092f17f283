"""Participant identity: a fixed-width 20-byte address.

The canonical field embedding is the big-endian integer value of the
address. It is used as the registry leaf value and as the receiver
component of disclosure public inputs, so decoding must reject anything
wider than IDENTITY_BITS rather than masking it.
"""

from __future__ import annotations

from dataclasses import dataclass

IDENTITY_BYTES = 20
IDENTITY_BITS = IDENTITY_BYTES * 8


@dataclass(frozen=True, order=True)
class Identity:
    """An authenticated caller or participant address."""
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, bytes) or len(self.raw) != IDENTITY_BYTES:
            raise ValueError(
                f"Identity must be exactly {IDENTITY_BYTES} bytes, got {self.raw!r}"
            )

    @classmethod
    def from_hex(cls, value: str) -> Identity:
        digits = value.removeprefix("0x").removeprefix("0X")
        if len(digits) != IDENTITY_BYTES * 2:
            raise ValueError(f"Identity hex must encode {IDENTITY_BYTES} bytes: {value!r}")
        return cls(bytes.fromhex(digits))

    @classmethod
    def from_field(cls, value: int) -> Identity:
        """Decode a field element; raises ValueError if it exceeds IDENTITY_BITS."""
        if value < 0 or value >> IDENTITY_BITS:
            raise ValueError(f"Field value does not fit in {IDENTITY_BITS} bits: {value!r}")
        return cls(value.to_bytes(IDENTITY_BYTES, byteorder="big"))

    def to_field(self) -> int:
        return int.from_bytes(self.raw, byteorder="big")

    @property
    def hex(self) -> str:
        return "0x" + self.raw.hex()

    def __str__(self) -> str:
        return self.hex

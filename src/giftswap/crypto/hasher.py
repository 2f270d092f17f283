"""Hash adapter over the field.

The protocol needs a deterministic, collision-resistant compression
function with 1, 2 and 3 inputs. Tree nodes use hash2 (internal) and
hash3 (leaf); key derivation uses hash1. Production deployments plug in
the same permutation the proof circuits use. The default here is SHA-256
with an arity tag, reduced into the field.
"""

from __future__ import annotations

import hashlib
from typing import Protocol

from giftswap.crypto.fields import FIELD_MODULUS, require_field_element


class Hasher(Protocol):
    """1/2/3-ary field hash. Implementations must be pure."""

    def hash1(self, x: int) -> int: ...

    def hash2(self, x: int, y: int) -> int: ...

    def hash3(self, x: int, y: int, z: int) -> int: ...


class Sha256FieldHasher:
    """SHA-256 over fixed-width 32-byte big-endian encodings, mod FIELD_MODULUS.

    The first byte of the preimage is the arity, so hash1(x) can never
    collide with hash2 over a crafted pair. Inputs must already be field
    elements; the adapter never reduces silently.
    """

    def hash1(self, x: int) -> int:
        return self._digest(x)

    def hash2(self, x: int, y: int) -> int:
        return self._digest(x, y)

    def hash3(self, x: int, y: int, z: int) -> int:
        return self._digest(x, y, z)

    @staticmethod
    def _digest(*values: int) -> int:
        h = hashlib.sha256()
        h.update(bytes([len(values)]))
        for v in values:
            require_field_element(v, "hash input")
            h.update(v.to_bytes(32, byteorder="big"))
        return int.from_bytes(h.digest(), byteorder="big") % FIELD_MODULUS


DEFAULT_HASHER = Sha256FieldHasher()

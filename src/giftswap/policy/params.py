"""Protocol parameters: tree depths and the fixed encoding widths.

Depths are deployment choices. The identity and limb widths are part of
the public-input format shared with the proof circuits; they are carried
in config so a mismatched deployment fails at load time instead of
producing proofs that can never verify.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from giftswap.crypto.fields import LIMB_BITS
from giftswap.crypto.smt import MAX_DEPTH
from giftswap.models.identity import IDENTITY_BITS

PARAMS_FILENAME = "protocol_params.json"

DEFAULT_REGISTRY_DEPTH = 20
DEFAULT_COMMITMENTS_DEPTH = 20


@dataclass(frozen=True)
class ProtocolParams:
    """Validated protocol parameters.

    Usage:
        params = ProtocolParams.from_config_dir(Path("config"))
        registry = Registry(admin, params=params)
    """
    registry_depth: int = DEFAULT_REGISTRY_DEPTH
    commitments_depth: int = DEFAULT_COMMITMENTS_DEPTH
    identity_bits: int = IDENTITY_BITS
    event_limb_bits: int = LIMB_BITS

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("; ".join(errors))

    def validate(self) -> list[str]:
        """Return a list of parameter violations. Empty means valid."""
        errors: list[str] = []
        for label, depth in (
            ("registry_depth", self.registry_depth),
            ("commitments_depth", self.commitments_depth),
        ):
            if not isinstance(depth, int) or not 1 <= depth <= MAX_DEPTH:
                errors.append(f"{label} must be in [1, {MAX_DEPTH}], got {depth!r}")
        if self.identity_bits != IDENTITY_BITS:
            errors.append(
                f"identity_bits must be {IDENTITY_BITS}, got {self.identity_bits!r}"
            )
        if self.event_limb_bits != LIMB_BITS:
            errors.append(
                f"event_limb_bits must be {LIMB_BITS}, got {self.event_limb_bits!r}"
            )
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> ProtocolParams:
        """Build params from a config mapping; absent keys take defaults."""
        return cls(
            registry_depth=config.get("registry_depth", DEFAULT_REGISTRY_DEPTH),
            commitments_depth=config.get("commitments_depth", DEFAULT_COMMITMENTS_DEPTH),
            identity_bits=config.get("identity_bits", IDENTITY_BITS),
            event_limb_bits=config.get("event_limb_bits", LIMB_BITS),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> ProtocolParams:
        """Load config_dir/protocol_params.json."""
        path = config_dir / PARAMS_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

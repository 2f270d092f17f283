"""Data models: participant identities and round state."""

from giftswap.models.identity import IDENTITY_BITS, Identity
from giftswap.models.round import GiftSender, RoundPhase

__all__ = ["IDENTITY_BITS", "Identity", "GiftSender", "RoundPhase"]

"""Protocol parameters loaded from config/."""

from giftswap.policy.params import ProtocolParams

__all__ = ["ProtocolParams"]

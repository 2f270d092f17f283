"""Gift exchange rounds: phase machine, round engine and factory."""

from giftswap.exchange.factory import RoundFactory
from giftswap.exchange.phase_machine import RoundPhaseMachine
from giftswap.exchange.round import GiftRound

__all__ = ["RoundFactory", "RoundPhaseMachine", "GiftRound"]

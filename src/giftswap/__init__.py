"""giftswap: protocol state engine for anonymous, verifiable gift exchange rounds."""

__version__ = "0.1.0"

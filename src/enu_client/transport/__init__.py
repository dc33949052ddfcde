"""
Chain API transports.
"""

from .http import AsyncChainApi, ChainApi

__all__ = ["AsyncChainApi", "ChainApi"]

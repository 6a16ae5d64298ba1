"""Stable — LP пул и его доли."""

from .pool import MIN_LIQUIDITY, StableConfig, StablePool
from .shares import PoolShares

__all__ = [
    "MIN_LIQUIDITY",
    "PoolShares",
    "StableConfig",
    "StablePool",
]

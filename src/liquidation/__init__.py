"""Liquidation — ликвидация позиций."""

from .engine import LiquidationConfig, LiquidationEngine

__all__ = [
    "LiquidationConfig",
    "LiquidationEngine",
]

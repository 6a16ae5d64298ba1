"""Positions — арена позиций и переходы их состояния."""

from .lifecycle import LeverageConfig, PositionLifecycle
from .registry import PositionRegistry

__all__ = [
    "LeverageConfig",
    "PositionLifecycle",
    "PositionRegistry",
]

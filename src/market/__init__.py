"""Market — конфигурация и сборка рынка."""

from .config import MarketConfig
from .factory import Market, build_market

__all__ = [
    "Market",
    "MarketConfig",
    "build_market",
]

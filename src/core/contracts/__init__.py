"""
Contract Validation Module

Валидация JSON контрактов движка (конфигурация рынка).
"""

from .validators import (
    ContractValidator,
    MarketConfigValidator,
    SchemaLoader,
    validate_market_config,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "MarketConfigValidator",
    # Functions
    "validate_market_config",
]

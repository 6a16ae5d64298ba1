"""
Domain models and value objects.

Immutable pydantic models: Position, GlobalPositions, VaultState, orders.
"""

from src.core.domain.order import (
    AnnouncedLeverageAdjust,
    AnnouncedLeverageClose,
    AnnouncedLeverageOpen,
    AnnouncedStableDeposit,
    AnnouncedStableWithdraw,
    LimitOrder,
    Order,
    OrderPayload,
    OrderType,
)
from src.core.domain.position import GlobalPositions, Position, PositionSummary
from src.core.domain.vault_state import VaultState

__all__ = [
    # Position model
    "Position",
    "GlobalPositions",
    "PositionSummary",
    # Vault state
    "VaultState",
    # Orders
    "OrderType",
    "Order",
    "OrderPayload",
    "LimitOrder",
    "AnnouncedStableDeposit",
    "AnnouncedStableWithdraw",
    "AnnouncedLeverageOpen",
    "AnnouncedLeverageAdjust",
    "AnnouncedLeverageClose",
]

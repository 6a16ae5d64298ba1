"""
Core math modules

Целочисленная fixed-point математика (WAD = 1e18), funding и perp math.
Все функции чистые; округление — к минус бесконечности.
"""

# Fixed point
from src.core.math.fixed_point import (
    SECONDS_PER_DAY,
    WAD,
    abs_diff,
    clamp,
    div_wad,
    from_wad,
    mul_div,
    mul_div_up,
    mul_wad,
    mul_wad_up,
    to_wad,
)

# Funding
from src.core.math.funding import (
    UnrecordedFunding,
    accrued_funding,
    accrued_funding_total_by_longs,
    current_funding_rate,
    current_skew,
    funding_change_since_recomputed,
    funding_velocity,
    get_unrecorded_funding,
    next_funding_entry,
    proportional_elapsed_time,
    proportional_skew,
    unrecorded_funding,
)

# Perp math
from src.core.math.perp_math import (
    aggregate_profit_loss,
    approx_liquidation_price,
    can_liquidate,
    entry_value,
    leverage,
    liquidation_fee,
    liquidation_margin,
    position_summary,
    profit_loss,
    profit_loss_total,
)

__all__ = [
    # Fixed point
    "SECONDS_PER_DAY",
    "WAD",
    "abs_diff",
    "clamp",
    "div_wad",
    "from_wad",
    "mul_div",
    "mul_div_up",
    "mul_wad",
    "mul_wad_up",
    "to_wad",
    # Funding
    "UnrecordedFunding",
    "accrued_funding",
    "accrued_funding_total_by_longs",
    "current_funding_rate",
    "current_skew",
    "funding_change_since_recomputed",
    "funding_velocity",
    "get_unrecorded_funding",
    "next_funding_entry",
    "proportional_elapsed_time",
    "proportional_skew",
    "unrecorded_funding",
    # Perp math
    "aggregate_profit_loss",
    "approx_liquidation_price",
    "can_liquidate",
    "entry_value",
    "leverage",
    "liquidation_fee",
    "liquidation_margin",
    "position_summary",
    "profit_loss",
    "profit_loss_total",
]

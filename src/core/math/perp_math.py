"""
Perp Math — PnL, маржа и ликвидационная математика

Чистые функции над Position / GlobalPositions. Все величины в WAD.

PnL лонга в единицах collateral:
    pnl = size * (price - entry_price) / price          (floor)

Агрегатный PnL (N = Σ size * entry_price, точно):
    A(price) = (S * price - N) / price                  (floor)
    нереализованный со снапшота = A(price) - A(last_price)

Settled margin:
    margin_after_settlement = margin + pnl + accrued_funding

Ликвидация:
    fee_usd   = clamp(size * fee_ratio * price, fee_lower_usd, fee_upper_usd)
    fee       = fee_usd / price
    buffer    = size * buffer_ratio
    liquidatable  ⇔  margin_after_settlement <= buffer + fee

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Per-position PnL и funding округляются к минус бесконечности
2. Σ per-position PnL <= A(price) при любой цене
3. Позиция с нулевым size никогда не ликвидируема
"""

from src.core.domain.position import GlobalPositions, Position, PositionSummary
from src.core.math.fixed_point import WAD, clamp, mul_div, mul_wad
from src.core.math.funding import accrued_funding

# =============================================================================
# PnL
# =============================================================================


def profit_loss(position: Position, price: int) -> int:
    """
    PnL позиции при цене price (floor).

    Examples:
        size=30, entry=1000, price=2000 → 30 * 1000 / 2000 = 15
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return mul_div(position.additional_size, price - position.entry_price, price)


def entry_value(position: Position) -> int:
    """Вклад позиции в entry_value_total: size * entry_price (точно, WAD * WAD)."""
    return position.additional_size * position.entry_price


def aggregate_profit_loss(size_opened_total: int, entry_value_total: int, price: int) -> int:
    """
    PnL всех открытых позиций при цене price.

    Σ size * (price - entry) / price = (S * price - Σ size * entry) / price.
    Округление floor одной суммы не меньше суммы per-position floor.

    Examples:
        S=32, N=30*1000 + 2*2000, price=1000 → 32 - 34000 / 1000 = -2
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return (size_opened_total * price - entry_value_total) // price


def profit_loss_total(global_positions: GlobalPositions, price: int) -> int:
    """
    Нереализованный агрегатный PnL лонгов с last_price снапшота.

    Разница точного агрегатного PnL при price и при last_price: сумма
    реализаций по цепочке снапшотов телескопируется, поэтому результат
    не зависит от промежуточных цен.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    gp = global_positions
    if gp.size_opened_total == 0 and gp.entry_value_total == 0:
        return 0
    return aggregate_profit_loss(
        gp.size_opened_total, gp.entry_value_total, price
    ) - aggregate_profit_loss(gp.size_opened_total, gp.entry_value_total, gp.last_price)


def position_summary(position: Position, next_cumulative: int, price: int) -> PositionSummary:
    """PnL, funding и settled margin позиции."""
    pnl = profit_loss(position, price)
    funding = accrued_funding(
        position.additional_size, position.entry_cumulative_funding, next_cumulative
    )
    return PositionSummary(
        profit_loss=pnl,
        accrued_funding=funding,
        margin_after_settlement=position.margin_deposited + pnl + funding,
    )


# =============================================================================
# LEVERAGE
# =============================================================================


def leverage(margin: int, additional_size: int) -> int:
    """Leverage = (margin + size) / margin (WAD)."""
    if margin <= 0:
        raise ValueError(f"margin must be positive, got {margin}")
    return mul_div(margin + additional_size, WAD, margin)


# =============================================================================
# LIQUIDATION
# =============================================================================


def liquidation_fee(
    size: int,
    fee_ratio: int,
    fee_lower_bound: int,
    fee_upper_bound: int,
    price: int,
) -> int:
    """
    Вознаграждение ликвидатора в collateral.

    Пропорциональная комиссия считается в USD, ограничивается
    [fee_lower_bound, fee_upper_bound] (USD) и переводится обратно по price.
    """
    if price <= 0:
        return 0
    proportional_fee_usd = mul_wad(mul_wad(size, fee_ratio), price)
    fee_usd = clamp(proportional_fee_usd, fee_lower_bound, fee_upper_bound)
    return mul_div(fee_usd, WAD, price)


def liquidation_margin(
    size: int,
    buffer_ratio: int,
    fee_ratio: int,
    fee_lower_bound: int,
    fee_upper_bound: int,
    price: int,
) -> int:
    """Минимальная settled margin, ниже (или равно) которой позиция ликвидируема."""
    buffer = mul_wad(size, buffer_ratio)
    return buffer + liquidation_fee(size, fee_ratio, fee_lower_bound, fee_upper_bound, price)


def can_liquidate(
    position: Position,
    next_cumulative: int,
    price: int,
    buffer_ratio: int,
    fee_ratio: int,
    fee_lower_bound: int,
    fee_upper_bound: int,
) -> bool:
    """settled_margin <= liquidation_margin (позиции нулевого размера — никогда)."""
    if position.additional_size == 0:
        return False
    summary = position_summary(position, next_cumulative, price)
    margin = liquidation_margin(
        position.additional_size,
        buffer_ratio,
        fee_ratio,
        fee_lower_bound,
        fee_upper_bound,
        price,
    )
    return summary.margin_after_settlement <= margin


def approx_liquidation_price(
    position: Position,
    next_cumulative: int,
    price: int,
    buffer_ratio: int,
    fee_ratio: int,
    fee_lower_bound: int,
    fee_upper_bound: int,
) -> int:
    """
    Приближённая цена ликвидации.

    Решаем margin + funding + size - size * entry / P = liq_margin:
        P = size * entry / (margin + funding + size - liq_margin)

    liq_margin считается при текущей цене: clamp комиссии ломает
    линейность для очень больших позиций, поэтому результат приближённый.

    Returns:
        Цена ликвидации или 0 (size == 0 или решения нет)
    """
    if position.additional_size == 0:
        return 0
    summary = position_summary(position, next_cumulative, price)
    liq_margin = liquidation_margin(
        position.additional_size,
        buffer_ratio,
        fee_ratio,
        fee_lower_bound,
        fee_upper_bound,
        price,
    )
    denominator = (
        position.margin_deposited
        + summary.accrued_funding
        + position.additional_size
        - liq_margin
    )
    if denominator <= 0:
        return 0
    result = mul_div(position.additional_size, position.entry_price, denominator)
    return result if result > 0 else 0

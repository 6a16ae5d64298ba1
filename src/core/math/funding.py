"""
Funding — динамическая funding rate на основе skew рынка

Чистые функции без состояния. Все величины в WAD (10**18).

Модель:
    proportional_skew = clamp(skew / pool_total, -1, 1)
    velocity          = clamp(p_skew * max_vel / max_vel_skew, -max_vel, max_vel)
    elapsed           = (now - t0) / 1 day
    funding_change    = velocity * elapsed
    current_rate      = last_rate + funding_change
    unrecorded        = avg(last_rate, current_rate) * elapsed   (трапеция)
    next_cumulative   = cumulative + unrecorded

Знак: funding_rate > 0 → лонги платят пулу (skew в сторону лонгов).

Для позиции:
    accrued_funding = size * (entry_cumulative - next_cumulative)   (floor)

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Per-position funding округляется к минус бесконечности
2. Сумма округлённых начислений по позициям ≤ агрегата по лонгам
3. При нулевом пуле skew обязан быть нулевым (не тихий default)
"""

from typing import NamedTuple

from src.core.errors import ErrorCode, ValidationFailure
from src.core.math.fixed_point import SECONDS_PER_DAY, WAD, clamp, mul_div, mul_wad

# =============================================================================
# TYPES
# =============================================================================


class UnrecordedFunding(NamedTuple):
    """Изменение funding с момента последнего пересчёта."""

    funding_change: int  # Изменение ставки (WAD, за день)
    unrecorded_funding: int  # Накопленный funding за интервал (WAD, на единицу size)


# =============================================================================
# SKEW → VELOCITY
# =============================================================================


def proportional_skew(skew: int, pool_total: int) -> int:
    """
    Skew в долях пула, ограниченный [-1, 1].

    Args:
        skew: Разница между размером лонгов и пулом (WAD, знаковая)
        pool_total: stableCollateralTotal (WAD, >= 0)

    Returns:
        clamp(skew / pool_total, -WAD, WAD); 0 при пустом пуле

    Raises:
        ValidationFailure: Если pool_total == 0, а skew != 0
    """
    if pool_total < 0:
        raise ValidationFailure(
            ErrorCode.VALUE_NOT_POSITIVE, "pool_total", pool_total=pool_total
        )
    if pool_total == 0:
        if skew != 0:
            raise ValidationFailure(
                ErrorCode.VALUE_NOT_POSITIVE,
                "non-zero skew with empty pool",
                skew=skew,
            )
        return 0
    return clamp(mul_div(skew, WAD, pool_total), -WAD, WAD)


def funding_velocity(p_skew: int, max_funding_velocity: int, max_velocity_skew: int) -> int:
    """
    Скорость изменения funding rate (WAD в день).

    При max_velocity_skew > 0 скорость достигает максимума при
    |p_skew| >= max_velocity_skew.
    """
    if max_velocity_skew > 0:
        velocity = mul_div(p_skew, max_funding_velocity, max_velocity_skew)
        return clamp(velocity, -max_funding_velocity, max_funding_velocity)
    return mul_wad(p_skew, max_funding_velocity)


# =============================================================================
# TIME INTEGRATION
# =============================================================================


def proportional_elapsed_time(prev_timestamp: int, now: int) -> int:
    """Доля суток, прошедшая с prev_timestamp (WAD)."""
    if now < prev_timestamp:
        raise ValueError(f"now {now} before prev_timestamp {prev_timestamp}")
    return mul_div(now - prev_timestamp, WAD, SECONDS_PER_DAY)


def funding_change_since_recomputed(
    p_skew: int,
    prev_timestamp: int,
    now: int,
    max_funding_velocity: int,
    max_velocity_skew: int,
) -> int:
    """Изменение funding rate с последнего пересчёта."""
    velocity = funding_velocity(p_skew, max_funding_velocity, max_velocity_skew)
    return mul_wad(velocity, proportional_elapsed_time(prev_timestamp, now))


def current_funding_rate(last_recomputed_rate: int, funding_change: int) -> int:
    """Текущая funding rate."""
    return last_recomputed_rate + funding_change


def unrecorded_funding(
    last_recomputed_rate: int, current_rate: int, prev_timestamp: int, now: int
) -> int:
    """
    Funding на единицу size за интервал (трапеция).

    Velocity кусочно-постоянна между пересчётами, поэтому ставка линейна
    по времени и средняя ставка интервала = (last + current) / 2.
    """
    elapsed = proportional_elapsed_time(prev_timestamp, now)
    return mul_div(last_recomputed_rate + current_rate, elapsed, 2 * WAD)


def get_unrecorded_funding(
    p_skew: int,
    last_recomputed_rate: int,
    prev_timestamp: int,
    now: int,
    max_funding_velocity: int,
    max_velocity_skew: int,
) -> UnrecordedFunding:
    """Изменение ставки и накопленный funding с последнего пересчёта."""
    change = funding_change_since_recomputed(
        p_skew, prev_timestamp, now, max_funding_velocity, max_velocity_skew
    )
    rate = current_funding_rate(last_recomputed_rate, change)
    return UnrecordedFunding(
        funding_change=change,
        unrecorded_funding=unrecorded_funding(last_recomputed_rate, rate, prev_timestamp, now),
    )


def next_funding_entry(unrecorded: int, cumulative_funding_rate: int) -> int:
    """Следующее значение cumulative funding rate."""
    return cumulative_funding_rate + unrecorded


# =============================================================================
# ACCRUAL
# =============================================================================


def accrued_funding(additional_size: int, entry_cumulative_funding: int, next_cumulative: int) -> int:
    """
    Funding позиции с момента её baseline (floor).

    Положительное значение — позиция получает funding,
    отрицательное — платит.
    """
    return mul_wad(additional_size, entry_cumulative_funding - next_cumulative)


def accrued_funding_total_by_longs(size_opened_total: int, unrecorded: int) -> int:
    """
    Агрегатный funding лонгов за интервал.

    Округляется вверх (в пользу лонгов), чтобы сумма per-position
    начислений (floor) никогда не превышала агрегат.
    """
    return -mul_wad(size_opened_total, unrecorded)


def current_skew(size_opened_total: int, stable_collateral_total: int, unrecorded: int) -> int:
    """
    Skew рынка с учётом неучтённого funding.

    skew = S - (C + S * u): funding, уплаченный лонгами, увеличивает пул.
    """
    return size_opened_total - stable_collateral_total - mul_wad(size_opened_total, unrecorded)

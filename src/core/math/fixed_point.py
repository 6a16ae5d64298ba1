"""
Fixed Point — целочисленная арифметика с 18 знаками после запятой

Все денежные величины и доли в движке — это Python int, масштабированные
на WAD = 10**18. Float в расчётах не используется.

Модуль обеспечивает:
- Умножение/деление в фиксированной точке с явным направлением округления
- Clamp и вспомогательные min/max для знаковых величин
- Конверсию человеко-читаемых значений ("0.003") в WAD для конфигов и тестов

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Округление по умолчанию — к минус бесконечности (floor)
2. Деление на ноль никогда не маскируется: ZeroDivisionError пропагирует
3. Промежуточное произведение считается до деления (int без переполнения)
"""

from decimal import ROUND_FLOOR, Decimal, localcontext
from typing import Final

# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# 1.0 в фиксированной точке
WAD: Final[int] = 10**18

# Секунд в сутках: funding velocity задаётся в единицах "за день"
SECONDS_PER_DAY: Final[int] = 86_400


# =============================================================================
# УМНОЖЕНИЕ / ДЕЛЕНИЕ
# =============================================================================


def mul_div(x: int, y: int, denominator: int) -> int:
    """
    x * y / denominator с округлением к минус бесконечности.

    Args:
        x: Первый множитель (знаковый)
        y: Второй множитель (знаковый)
        denominator: Делитель (не ноль)

    Returns:
        floor(x * y / denominator)

    Raises:
        ZeroDivisionError: Если denominator == 0

    Examples:
        >>> mul_div(7, 1, 2)
        3
        >>> mul_div(-7, 1, 2)
        -4
    """
    return (x * y) // denominator


def mul_div_up(x: int, y: int, denominator: int) -> int:
    """x * y / denominator с округлением к плюс бесконечности."""
    return -((-(x * y)) // denominator)


def mul_wad(x: int, y: int) -> int:
    """
    Произведение двух WAD-величин, округлённое вниз.

    Examples:
        >>> mul_wad(30 * WAD, 2 * WAD) == 60 * WAD
        True
    """
    return mul_div(x, y, WAD)


def mul_wad_up(x: int, y: int) -> int:
    """Произведение двух WAD-величин, округлённое вверх."""
    return mul_div_up(x, y, WAD)


def div_wad(x: int, y: int) -> int:
    """
    Частное двух WAD-величин (x / y), округлённое вниз.

    Raises:
        ZeroDivisionError: Если y == 0
    """
    return mul_div(x, WAD, y)


# =============================================================================
# УТИЛИТЫ
# =============================================================================


def clamp(value: int, min_value: int, max_value: int) -> int:
    """
    Ограничение значения диапазоном [min_value, max_value].

    Raises:
        ValueError: Если min_value > max_value
    """
    if min_value > max_value:
        raise ValueError(f"min_value {min_value} > max_value {max_value}")
    return max(min_value, min(value, max_value))


def abs_diff(a: int, b: int) -> int:
    """|a - b|"""
    return a - b if a >= b else b - a


def to_wad(value: str | int | Decimal) -> int:
    """
    Конверсия десятичного значения в WAD.

    Принимает строки, чтобы не терять точность на float.
    Дробная часть глубже 18 знаков отбрасывается (floor).

    Examples:
        >>> to_wad("0.003")
        3000000000000000
        >>> to_wad(25)
        25000000000000000000
    """
    if isinstance(value, float):
        raise TypeError("to_wad does not accept float, pass a str or Decimal")
    with localcontext() as ctx:
        ctx.prec = 78
        scaled = Decimal(value) * WAD
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def from_wad(value: int) -> Decimal:
    """Конверсия WAD в Decimal (для логов и отчётов)."""
    return Decimal(value) / Decimal(WAD)

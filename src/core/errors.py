"""
Errors — закрытая таксономия ошибок движка

Каждая ошибка имеет:
- ErrorCode: конкретная причина (MaxSkewReached, OrderHasExpired, ...)
- ErrorKind: класс причины (validation / economic / timing / oracle / authorization)

Kind однозначно определяется кодом: нельзя поднять TimingViolation с кодом
MaxSkewReached. Для этого используйте raise_for(code, ...) или класс,
соответствующий kind.

Поведение по kind:
- VALIDATION: плохие параметры, отказ до любых изменений состояния
- ECONOMIC: экономические ограничения (slippage, skew cap, leverage, bad debt)
- TIMING: слишком рано / истёк срок, ордер остаётся отменяемым
- ORACLE: невалидная / устаревшая / расходящаяся цена, без fallback
- AUTHORIZATION: не владелец, не авторизованный модуль, пауза, re-entrancy
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Класс ошибки."""

    VALIDATION = "validation"
    ECONOMIC = "economic"
    TIMING = "timing"
    ORACLE = "oracle"
    AUTHORIZATION = "authorization"


class ErrorCode(str, Enum):
    """Конкретная причина отказа."""

    # Validation
    ZERO_ADDRESS = "ZeroAddress"
    ZERO_VALUE = "ZeroValue"
    VALUE_NOT_POSITIVE = "ValueNotPositive"
    INVALID_FEE = "InvalidFee"
    INVALID_THRESHOLDS = "InvalidThresholds"
    INVALID_CONFIG = "InvalidConfig"
    AMOUNT_TOO_SMALL = "AmountTooSmall"
    ORDER_NOT_FOUND = "OrderNotFound"
    POSITION_NOT_FOUND = "PositionNotFound"
    LIMIT_ORDER_NOT_FOUND = "LimitOrderNotFound"
    INSUFFICIENT_BALANCE = "InsufficientBalance"

    # Economic guardrails
    HIGH_SLIPPAGE = "HighSlippage"
    MAX_FILL_PRICE_TOO_LOW = "MaxFillPriceTooLow"
    MIN_FILL_PRICE_TOO_HIGH = "MinFillPriceTooHigh"
    MAX_SKEW_REACHED = "MaxSkewReached"
    DEPOSIT_CAP_REACHED = "DepositCapReached"
    LEVERAGE_TOO_LOW = "LeverageTooLow"
    LEVERAGE_TOO_HIGH = "LeverageTooHigh"
    MARGIN_TOO_SMALL = "MarginTooSmall"
    POSITION_CREATES_BAD_DEBT = "PositionCreatesBadDebt"
    INSUFFICIENT_GLOBAL_MARGIN = "InsufficientGlobalMargin"
    NOT_ENOUGH_MARGIN_FOR_FEES = "NotEnoughMarginForFees"
    CANNOT_LIQUIDATE = "CannotLiquidate"
    LIMIT_ORDER_PRICE_NOT_IN_RANGE = "LimitOrderPriceNotInRange"

    # Timing
    EXECUTABLE_TIME_NOT_REACHED = "ExecutableTimeNotReached"
    ORDER_HAS_EXPIRED = "OrderHasExpired"
    ORDER_HAS_NOT_EXPIRED = "OrderHasNotExpired"

    # Oracle
    PRICE_STALE = "PriceStale"
    PRICE_INVALID = "PriceInvalid"
    PRICE_MISMATCH = "PriceMismatch"

    # Authorization
    ONLY_OWNER = "OnlyOwner"
    NOT_TOKEN_OWNER = "NotTokenOwner"
    ONLY_AUTHORIZED_MODULE = "OnlyAuthorizedModule"
    MODULE_PAUSED = "ModulePaused"
    REENTRANT_CALL = "ReentrantCall"
    TOKEN_LOCKED = "TokenLocked"


_VALIDATION_CODES = frozenset(
    {
        ErrorCode.ZERO_ADDRESS,
        ErrorCode.ZERO_VALUE,
        ErrorCode.VALUE_NOT_POSITIVE,
        ErrorCode.INVALID_FEE,
        ErrorCode.INVALID_THRESHOLDS,
        ErrorCode.INVALID_CONFIG,
        ErrorCode.AMOUNT_TOO_SMALL,
        ErrorCode.ORDER_NOT_FOUND,
        ErrorCode.POSITION_NOT_FOUND,
        ErrorCode.LIMIT_ORDER_NOT_FOUND,
        ErrorCode.INSUFFICIENT_BALANCE,
    }
)

_TIMING_CODES = frozenset(
    {
        ErrorCode.EXECUTABLE_TIME_NOT_REACHED,
        ErrorCode.ORDER_HAS_EXPIRED,
        ErrorCode.ORDER_HAS_NOT_EXPIRED,
    }
)

_ORACLE_CODES = frozenset(
    {ErrorCode.PRICE_STALE, ErrorCode.PRICE_INVALID, ErrorCode.PRICE_MISMATCH}
)

_AUTHORIZATION_CODES = frozenset(
    {
        ErrorCode.ONLY_OWNER,
        ErrorCode.NOT_TOKEN_OWNER,
        ErrorCode.ONLY_AUTHORIZED_MODULE,
        ErrorCode.MODULE_PAUSED,
        ErrorCode.REENTRANT_CALL,
        ErrorCode.TOKEN_LOCKED,
    }
)


def kind_of(code: ErrorCode) -> ErrorKind:
    """Kind для кода ошибки."""
    if code in _VALIDATION_CODES:
        return ErrorKind.VALIDATION
    if code in _TIMING_CODES:
        return ErrorKind.TIMING
    if code in _ORACLE_CODES:
        return ErrorKind.ORACLE
    if code in _AUTHORIZATION_CODES:
        return ErrorKind.AUTHORIZATION
    return ErrorKind.ECONOMIC


# =============================================================================
# EXCEPTIONS
# =============================================================================


class EngineError(Exception):
    """
    Базовая ошибка движка.

    Attributes:
        code: Конкретная причина
        kind: Класс причины (выводится из code)
        context: Значения, приведшие к отказу (для логов и тестов)
    """

    kind: ErrorKind

    def __init__(self, code: ErrorCode, message: str = "", **context: Any):
        expected = kind_of(code)
        if getattr(type(self), "kind", expected) != expected:
            raise TypeError(
                f"{type(self).__name__} cannot carry {code.value} ({expected.value} error)"
            )
        self.code = code
        self.kind = expected
        self.context = context
        super().__init__(message or code.value)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.context:
            return f"{self.code.value}: {base}"
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.code.value}: {base} ({details})"


class ValidationFailure(EngineError):
    """Невалидные параметры вызова."""

    kind = ErrorKind.VALIDATION


class EconomicGuardrail(EngineError):
    """Нарушение экономического ограничения."""

    kind = ErrorKind.ECONOMIC


class TimingViolation(EngineError):
    """Вызов вне допустимого временного окна."""

    kind = ErrorKind.TIMING


class OracleFailure(EngineError):
    """Цена отсутствует, устарела или расходится между фидами."""

    kind = ErrorKind.ORACLE


class AuthorizationFailure(EngineError):
    """Нет прав на операцию."""

    kind = ErrorKind.AUTHORIZATION


_CLASS_BY_KIND: dict[ErrorKind, type[EngineError]] = {
    ErrorKind.VALIDATION: ValidationFailure,
    ErrorKind.ECONOMIC: EconomicGuardrail,
    ErrorKind.TIMING: TimingViolation,
    ErrorKind.ORACLE: OracleFailure,
    ErrorKind.AUTHORIZATION: AuthorizationFailure,
}


def error_for(code: ErrorCode, message: str = "", **context: Any) -> EngineError:
    """
    Создание исключения правильного класса для кода.

    Examples:
        >>> raise error_for(ErrorCode.MAX_SKEW_REACHED, skew_fraction=...)
    """
    return _CLASS_BY_KIND[kind_of(code)](code, message, **context)

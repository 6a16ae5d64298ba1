"""
Order — объявленные, но ещё не исполненные намерения пользователей

Двухфазный протокол: announce записывает Order с executable_at_time,
execute потребляет его, cancel (после истечения) удаляет и возвращает escrow.

- Delayed orders хранятся по аккаунту (не более одного на аккаунт)
- Limit orders хранятся по token_id позиции
"""

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field

# =============================================================================
# ENUMS
# =============================================================================


class OrderType(str, Enum):
    """Тип delayed ордера."""

    STABLE_DEPOSIT = "stable_deposit"
    STABLE_WITHDRAW = "stable_withdraw"
    LEVERAGE_OPEN = "leverage_open"
    LEVERAGE_ADJUST = "leverage_adjust"
    LEVERAGE_CLOSE = "leverage_close"


# =============================================================================
# PAYLOADS
# =============================================================================


class AnnouncedStableDeposit(BaseModel):
    """Депозит в пул LP."""

    kind: Literal[OrderType.STABLE_DEPOSIT] = OrderType.STABLE_DEPOSIT
    deposit_amount: int = Field(..., gt=0)
    min_amount_out: int = Field(..., ge=0, description="Минимум LP shares к выпуску")

    model_config = {"frozen": True}


class AnnouncedStableWithdraw(BaseModel):
    """Вывод из пула LP (shares заблокированы до исполнения)."""

    kind: Literal[OrderType.STABLE_WITHDRAW] = OrderType.STABLE_WITHDRAW
    withdraw_amount: int = Field(..., gt=0, description="LP shares к сжиганию")
    min_amount_out: int = Field(..., ge=0, description="Минимум collateral после комиссий")

    model_config = {"frozen": True}


class AnnouncedLeverageOpen(BaseModel):
    """Открытие позиции."""

    kind: Literal[OrderType.LEVERAGE_OPEN] = OrderType.LEVERAGE_OPEN
    margin: int = Field(..., gt=0)
    additional_size: int = Field(..., gt=0)
    max_fill_price: int = Field(..., gt=0)
    trade_fee: int = Field(..., ge=0)

    model_config = {"frozen": True}


class AnnouncedLeverageAdjust(BaseModel):
    """
    Изменение маржи и/или размера позиции.

    fill_price — максимальная цена при увеличении size и минимальная при
    уменьшении.
    """

    kind: Literal[OrderType.LEVERAGE_ADJUST] = OrderType.LEVERAGE_ADJUST
    token_id: int = Field(..., ge=0)
    margin_adjustment: int
    additional_size_adjustment: int
    fill_price: int = Field(..., gt=0)
    trade_fee: int = Field(..., ge=0)
    total_fee: int = Field(..., ge=0, description="trade_fee + keeper_fee")

    model_config = {"frozen": True}


class AnnouncedLeverageClose(BaseModel):
    """Закрытие позиции."""

    kind: Literal[OrderType.LEVERAGE_CLOSE] = OrderType.LEVERAGE_CLOSE
    token_id: int = Field(..., ge=0)
    min_fill_price: int = Field(..., ge=0)
    trade_fee: int = Field(..., ge=0)

    model_config = {"frozen": True}


OrderPayload = Union[
    AnnouncedStableDeposit,
    AnnouncedStableWithdraw,
    AnnouncedLeverageOpen,
    AnnouncedLeverageAdjust,
    AnnouncedLeverageClose,
]


# =============================================================================
# ORDERS
# =============================================================================


class Order(BaseModel):
    """Delayed ордер аккаунта."""

    order_type: OrderType
    payload: OrderPayload = Field(..., discriminator="kind")
    keeper_fee: int = Field(..., ge=0)
    executable_at_time: int = Field(..., gt=0)

    model_config = {"frozen": True}

    def expires_at(self, max_executability_age: int) -> int:
        """Последний момент, когда ордер ещё исполним."""
        return self.executable_at_time + max_executability_age


class LimitOrder(BaseModel):
    """
    Лимитный ордер на закрытие позиции.

    Keeper fee не фиксируется при announce: берётся текущая котировка на
    момент исполнения. Лимитные ордера не истекают.
    """

    token_id: int = Field(..., ge=0)
    price_lower_threshold: int = Field(..., ge=0, description="Stop-loss")
    price_upper_threshold: int = Field(..., gt=0, description="Take-profit")
    executable_at_time: int = Field(..., gt=0)

    model_config = {"frozen": True}

"""
PositionLifecycle — open / adjust / close леверидж-позиций

Состояния: NONE → OPEN → OPEN (новый baseline после adjust)* → {CLOSED, LIQUIDATED}

Вызывается модулями ордеров (delayed / limit) при исполнении, после того
как funding уже пересчитан. Проверки на исполнении авторитетны: цена
сравнивается с fill-границей ордера по текущей цене, а не по цене announce.

Open:
    price <= max_fill_price, skew cap, leverage ∈ [min, max], margin >= margin_min,
    свежая позиция не должна быть ликвидируемой (bad-debt guard)

Adjust:
    settled margin становится новой маржой, baseline = текущие цена и funding.
    При уменьшении/неизменной марже комиссии берутся из settled margin.
    Trade fee уходит в пул только при изменении size.

Close:
    settled margin > 0 и покрывает trade_fee + keeper_fee; агрегатный PnL
    реализуется по цене закрытия, после чего глобальная маржа уменьшается
    на settled margin позиции (как при adjust), size на её размер.
"""

from dataclasses import dataclass, replace
from typing import Protocol

from src.core.domain.order import AnnouncedLeverageAdjust, AnnouncedLeverageOpen, Order
from src.core.domain.position import Position, PositionSummary
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math import perp_math
from src.core.math.fixed_point import WAD, mul_wad, to_wad
from src.core.math.funding import accrued_funding_total_by_longs
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.positions.registry import PositionRegistry
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)

MAX_TRADING_FEE = to_wad("0.01")


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class LeverageConfig:
    """Параметры леверидж-торговли."""

    trading_fee: int = to_wad("0.001")  # доля size
    margin_min: int = to_wad("0.05")  # collateral
    leverage_min: int = to_wad("1.5")
    leverage_max: int = to_wad(25)

    def __post_init__(self) -> None:
        if self.trading_fee < 0 or self.trading_fee > MAX_TRADING_FEE:
            raise ValueError(f"trading_fee out of [0, 0.01e18]: {self.trading_fee}")
        if self.margin_min <= 0:
            raise ValueError(f"margin_min must be positive, got {self.margin_min}")
        if self.leverage_min <= WAD or self.leverage_max <= self.leverage_min:
            raise ValueError(
                f"invalid leverage criteria: [{self.leverage_min}, {self.leverage_max}]"
            )


class LiquidationCheck(Protocol):
    def can_liquidate_position(self, position: Position, price: int) -> bool: ...


class LimitOrderCanceller(Protocol):
    def cancel_existing_limit_order(self, capability: ModuleCapability, token_id: int) -> bool: ...


# =============================================================================
# LIFECYCLE
# =============================================================================


class PositionLifecycle:
    """Переходы состояния леверидж-позиций."""

    def __init__(
        self,
        config: LeverageConfig,
        capability: ModuleCapability,
        vault: Vault,
        registry: PositionRegistry,
        liquidation: LiquidationCheck,
        oracle: OracleAdapter,
        journal: Journal,
    ):
        self.config = config
        self._capability = capability
        self._vault = vault
        self._registry = registry
        self._liquidation = liquidation
        self._oracle = oracle
        self._journal = journal
        self._limit_orders: LimitOrderCanceller | None = None

    def attach_limit_orders(self, limit_orders: LimitOrderCanceller) -> None:
        self._limit_orders = limit_orders

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def get_trade_fee(self, size: int) -> int:
        """Trade fee за изменение размера на size."""
        return mul_wad(self.config.trading_fee, abs(size))

    def check_leverage_criteria(self, margin: int, size: int) -> None:
        """
        Raises:
            EconomicGuardrail: MarginTooSmall / LeverageTooLow / LeverageTooHigh
        """
        if margin < self.config.margin_min:
            raise EconomicGuardrail(
                ErrorCode.MARGIN_TOO_SMALL, margin=margin, margin_min=self.config.margin_min
            )
        lev = perp_math.leverage(margin, size)
        if lev < self.config.leverage_min:
            raise EconomicGuardrail(
                ErrorCode.LEVERAGE_TOO_LOW, leverage=lev, leverage_min=self.config.leverage_min
            )
        if lev > self.config.leverage_max:
            raise EconomicGuardrail(
                ErrorCode.LEVERAGE_TOO_HIGH, leverage=lev, leverage_max=self.config.leverage_max
            )

    def _check_bad_debt(self, token_id: int, position: Position, price: int) -> None:
        if self._liquidation.can_liquidate_position(position, price):
            raise EconomicGuardrail(
                ErrorCode.POSITION_CREATES_BAD_DEBT, token_id=token_id, price=price
            )

    def _get_position(self, token_id: int) -> Position:
        position = self._vault.get_position(token_id)
        if position is None:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id)
        return position

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_position_summary(self, token_id: int, price: int | None = None) -> PositionSummary:
        position = self._get_position(token_id)
        if price is None:
            price, _ = self._oracle.get_price()
        return perp_math.position_summary(position, self._vault.next_funding_entry(), price)

    def profit_loss_total(self, price: int) -> int:
        return perp_math.profit_loss_total(self._vault.global_positions, price)

    def funding_adjusted_long_pnl_total(self, price: int) -> int:
        """Агрегатный PnL лонгов с учётом неучтённого funding."""
        _, unrecorded = self._vault.unrecorded_funding()
        return self.profit_loss_total(price) + accrued_funding_total_by_longs(
            self._vault.global_positions.size_opened_total, unrecorded
        )

    # -------------------------------------------------------------------------
    # Open
    # -------------------------------------------------------------------------

    def execute_open(
        self,
        caller: ModuleCapability,
        account: str,
        keeper: str,
        order: Order,
        price: int,
    ) -> int:
        """
        Открытие позиции по announced ордеру (escrow уже в Vault).

        Returns:
            token_id новой позиции
        """
        self._vault.require_module(caller)
        self._vault.require_not_paused(ModuleKey.LEVERAGE)
        payload = order.payload
        if not isinstance(payload, AnnouncedLeverageOpen):
            raise ValidationFailure(ErrorCode.ORDER_NOT_FOUND, "not an open order")

        if price > payload.max_fill_price:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE, price=price, max_fill_price=payload.max_fill_price
            )
        self._vault.check_skew_max(payload.additional_size)
        self.check_leverage_criteria(payload.margin, payload.additional_size)

        token_id = self._registry.mint(self._capability, account)
        position = Position(
            entry_price=price,
            margin_deposited=payload.margin,
            additional_size=payload.additional_size,
            entry_cumulative_funding=self._vault.state.cumulative_funding_rate,
        )
        self._vault.set_position(self._capability, token_id, position)
        self._vault.update_global_position_data(
            self._capability, price, payload.margin, payload.additional_size
        )
        self._check_bad_debt(token_id, position, price)

        self._vault.update_stable_collateral_total(self._capability, payload.trade_fee)
        self._vault.send_collateral(self._capability, keeper, order.keeper_fee)

        logger.info(
            "position_opened",
            token_id=token_id,
            account=account,
            price=price,
            margin=payload.margin,
            size=payload.additional_size,
            trade_fee=payload.trade_fee,
        )
        return token_id

    # -------------------------------------------------------------------------
    # Adjust
    # -------------------------------------------------------------------------

    def execute_adjust(
        self,
        caller: ModuleCapability,
        account: str,
        keeper: str,
        order: Order,
        price: int,
    ) -> None:
        """Изменение маржи и/или размера с новым baseline."""
        self._vault.require_module(caller)
        self._vault.require_not_paused(ModuleKey.LEVERAGE)
        payload = order.payload
        if not isinstance(payload, AnnouncedLeverageAdjust):
            raise ValidationFailure(ErrorCode.ORDER_NOT_FOUND, "not an adjust order")

        token_id = payload.token_id
        position = self._get_position(token_id)

        if payload.additional_size_adjustment > 0:
            if price > payload.fill_price:
                raise EconomicGuardrail(
                    ErrorCode.HIGH_SLIPPAGE, price=price, max_fill_price=payload.fill_price
                )
            self._vault.check_skew_max(payload.additional_size_adjustment)
        elif payload.additional_size_adjustment < 0 and price < payload.fill_price:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE, price=price, min_fill_price=payload.fill_price
            )

        summary = perp_math.position_summary(
            position, self._vault.state.cumulative_funding_rate, price
        )

        # При уменьшении маржи комиссии оплачиваются из самой позиции
        if payload.margin_adjustment > 0:
            margin_delta = payload.margin_adjustment
        else:
            margin_delta = payload.margin_adjustment - payload.total_fee

        new_margin = summary.margin_after_settlement + margin_delta
        new_size = position.additional_size + payload.additional_size_adjustment
        if new_margin <= 0:
            raise ValidationFailure(
                ErrorCode.VALUE_NOT_POSITIVE, "new margin", new_margin=new_margin
            )
        if new_size <= 0:
            raise ValidationFailure(ErrorCode.VALUE_NOT_POSITIVE, "new size", new_size=new_size)
        self.check_leverage_criteria(new_margin, new_size)

        self._vault.update_global_position_data(
            self._capability,
            price,
            margin_delta,
            payload.additional_size_adjustment,
            entry_value_delta=new_size * price - perp_math.entry_value(position),
        )
        new_position = Position(
            entry_price=price,
            margin_deposited=new_margin,
            additional_size=new_size,
            entry_cumulative_funding=self._vault.state.cumulative_funding_rate,
        )
        self._vault.set_position(self._capability, token_id, new_position)
        self._check_bad_debt(token_id, new_position, price)

        if payload.additional_size_adjustment != 0:
            self._vault.update_stable_collateral_total(self._capability, payload.trade_fee)

        self._vault.send_collateral(self._capability, keeper, order.keeper_fee)
        if payload.margin_adjustment < 0:
            self._vault.send_collateral(self._capability, account, -payload.margin_adjustment)

        logger.info(
            "position_adjusted",
            token_id=token_id,
            account=account,
            price=price,
            margin=new_margin,
            size=new_size,
            margin_adjustment=payload.margin_adjustment,
            size_adjustment=payload.additional_size_adjustment,
        )

    # -------------------------------------------------------------------------
    # Close
    # -------------------------------------------------------------------------

    def execute_close(
        self,
        caller: ModuleCapability,
        owner: str,
        keeper: str,
        token_id: int,
        min_fill_price: int,
        trade_fee: int,
        keeper_fee: int,
        price: int,
    ) -> int:
        """
        Закрытие позиции.

        Returns:
            Сумма, выплаченная владельцу
        """
        self._vault.require_module(caller)
        self._vault.require_not_paused(ModuleKey.LEVERAGE)
        position = self._get_position(token_id)

        if price < min_fill_price:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE, price=price, min_fill_price=min_fill_price
            )

        summary = perp_math.position_summary(
            position, self._vault.state.cumulative_funding_rate, price
        )
        settled_margin = summary.margin_after_settlement
        if settled_margin <= 0:
            raise ValidationFailure(
                ErrorCode.VALUE_NOT_POSITIVE, "settled margin", settled_margin=settled_margin
            )
        total_fee = trade_fee + keeper_fee
        if settled_margin < total_fee:
            raise EconomicGuardrail(
                ErrorCode.NOT_ENOUGH_MARGIN_FOR_FEES,
                settled_margin=settled_margin,
                total_fee=total_fee,
            )

        self._vault.update_global_position_data(
            self._capability,
            price,
            -settled_margin,
            -position.additional_size,
            entry_value_delta=-perp_math.entry_value(position),
        )
        self._vault.delete_position(self._capability, token_id)
        if self._limit_orders is not None:
            self._limit_orders.cancel_existing_limit_order(self._capability, token_id)
        self._registry.burn(self._capability, token_id)

        self._vault.update_stable_collateral_total(self._capability, trade_fee)

        amount_out = settled_margin - total_fee
        self._vault.send_collateral(self._capability, keeper, keeper_fee)
        self._vault.send_collateral(self._capability, owner, amount_out)

        logger.info(
            "position_closed",
            token_id=token_id,
            owner=owner,
            price=price,
            settled_margin=settled_margin,
            amount_out=amount_out,
        )
        return amount_out

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    def _set_config(self, caller: str, **changes) -> None:
        if caller != self._vault.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)
        try:
            self.config = replace(self.config, **changes)
        except ValueError as exc:
            code = ErrorCode.INVALID_FEE if "trading_fee" in changes else ErrorCode.INVALID_CONFIG
            raise ValidationFailure(code, str(exc)) from exc
        logger.info("leverage_config_updated", **changes)

    @entry_point
    def set_leverage_trading_fee(self, caller: str, trading_fee: int) -> None:
        self._set_config(caller, trading_fee=trading_fee)

    @entry_point
    def set_leverage_criteria(
        self, caller: str, margin_min: int, leverage_min: int, leverage_max: int
    ) -> None:
        self._set_config(
            caller, margin_min=margin_min, leverage_min=leverage_min, leverage_max=leverage_max
        )

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> LeverageConfig:
        return self.config

    def restore(self, state: LeverageConfig) -> None:
        self.config = state

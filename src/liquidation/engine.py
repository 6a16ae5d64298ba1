"""
LiquidationEngine — ликвидация неплатёжеспособных позиций

Позиция ликвидируема, если её settled margin (margin + PnL + funding)
не превышает liquidation margin = buffer(size) + fee(size, price).

Распределение при ликвидации:
- settled > 0: ликвидатор получает min(expected_fee, settled),
  остаток маржи уходит в пул
- settled <= 0: пул поглощает весь дефицит (socialized loss)

Учёт совпадает с close: агрегатный PnL реализуется по цене ликвидации,
глобальная маржа уменьшается на полную settled margin (margin + PnL +
funding), а не только на margin + funding с отдельным зачислением PnL
в пул. Итог для M и C тот же, потому что PnL позиции уже перенесён
из пула в M при реализации агрегата. При отрицательной settled margin
M увеличивается, дефицит списывается с пула.

Исходящий перевод ликвидатору выполняется последним.
"""

from dataclasses import dataclass, replace
from typing import Protocol, Sequence

from src.core.domain.position import Position
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math import perp_math
from src.core.math.fixed_point import WAD, to_wad
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.oracle.feeds import PriceUpdate
from src.positions.registry import PositionRegistry
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class LiquidationConfig:
    """
    Параметры ликвидации.

    Границы комиссии заданы в USD (WAD) и переводятся в collateral по цене.
    """

    fee_ratio: int = to_wad("0.005")
    buffer_ratio: int = to_wad("0.005")
    fee_lower_bound: int = to_wad(4)  # USD
    fee_upper_bound: int = to_wad(100)  # USD

    def __post_init__(self) -> None:
        if self.fee_ratio <= 0 or self.fee_ratio > WAD:
            raise ValueError(f"fee_ratio out of (0, 1e18]: {self.fee_ratio}")
        if self.buffer_ratio <= 0 or self.buffer_ratio > WAD:
            raise ValueError(f"buffer_ratio out of (0, 1e18]: {self.buffer_ratio}")
        if self.fee_lower_bound <= 0 or self.fee_upper_bound < self.fee_lower_bound:
            raise ValueError(
                f"invalid fee bounds: [{self.fee_lower_bound}, {self.fee_upper_bound}]"
            )


class LimitOrderCanceller(Protocol):
    def cancel_existing_limit_order(self, capability: ModuleCapability, token_id: int) -> bool: ...


# =============================================================================
# ENGINE
# =============================================================================


class LiquidationEngine:
    """Проверка и исполнение ликвидаций."""

    def __init__(
        self,
        config: LiquidationConfig,
        capability: ModuleCapability,
        vault: Vault,
        registry: PositionRegistry,
        oracle: OracleAdapter,
        journal: Journal,
    ):
        self.config = config
        self._capability = capability
        self._vault = vault
        self._registry = registry
        self._oracle = oracle
        self._journal = journal
        self._limit_orders: LimitOrderCanceller | None = None

    def attach_limit_orders(self, limit_orders: LimitOrderCanceller) -> None:
        self._limit_orders = limit_orders

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def liquidation_fee(self, size: int, price: int) -> int:
        c = self.config
        return perp_math.liquidation_fee(
            size, c.fee_ratio, c.fee_lower_bound, c.fee_upper_bound, price
        )

    def liquidation_margin(self, size: int, price: int) -> int:
        c = self.config
        return perp_math.liquidation_margin(
            size, c.buffer_ratio, c.fee_ratio, c.fee_lower_bound, c.fee_upper_bound, price
        )

    def can_liquidate_position(self, position: Position, price: int) -> bool:
        """Проверка по текущему (ещё не зафиксированному) funding."""
        c = self.config
        return perp_math.can_liquidate(
            position,
            self._vault.next_funding_entry(),
            price,
            c.buffer_ratio,
            c.fee_ratio,
            c.fee_lower_bound,
            c.fee_upper_bound,
        )

    def can_liquidate(self, token_id: int, price: int | None = None) -> bool:
        """
        Ликвидируема ли позиция при price (по умолчанию — цена оракула).

        Несуществующая позиция не ликвидируема.
        """
        position = self._vault.get_position(token_id)
        if position is None:
            return False
        if price is None:
            price, _ = self._oracle.get_price()
        return self.can_liquidate_position(position, price)

    def approx_liquidation_price(self, token_id: int) -> int:
        """Приближённая цена ликвидации (0 — позиции нет или решения нет)."""
        position = self._vault.get_position(token_id)
        if position is None:
            return 0
        price, _ = self._oracle.get_price()
        c = self.config
        return perp_math.approx_liquidation_price(
            position,
            self._vault.next_funding_entry(),
            price,
            c.buffer_ratio,
            c.fee_ratio,
            c.fee_lower_bound,
            c.fee_upper_bound,
        )

    # -------------------------------------------------------------------------
    # Liquidation
    # -------------------------------------------------------------------------

    @entry_point
    def liquidate(
        self,
        caller: str,
        token_id: int,
        price_updates: Sequence[PriceUpdate] | None = None,
        update_fee: int = 0,
    ) -> int:
        """
        Ликвидация позиции.

        Returns:
            Вознаграждение ликвидатора (collateral)

        Raises:
            ValidationFailure: PositionNotFound
            EconomicGuardrail: CannotLiquidate
            AuthorizationFailure: ModulePaused
        """
        self._vault.require_not_paused(ModuleKey.LIQUIDATION)
        if price_updates:
            self._oracle.update_pull_price(price_updates, update_fee)

        self._vault.accrue_funding(self._capability)

        position = self._vault.get_position(token_id)
        if position is None:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id)

        price, _ = self._oracle.get_price()
        if not self.can_liquidate_position(position, price):
            raise EconomicGuardrail(ErrorCode.CANNOT_LIQUIDATE, token_id=token_id, price=price)

        summary = perp_math.position_summary(
            position, self._vault.state.cumulative_funding_rate, price
        )
        settled_margin = summary.margin_after_settlement

        self._vault.update_global_position_data(
            self._capability,
            price,
            -settled_margin,
            -position.additional_size,
            entry_value_delta=-perp_math.entry_value(position),
        )

        liquidator_fee = 0
        if settled_margin > 0:
            expected_fee = self.liquidation_fee(position.additional_size, price)
            liquidator_fee = min(expected_fee, settled_margin)
        # Остаток маржи уходит в пул, отрицательный остаток пул поглощает
        self._vault.update_stable_collateral_total(
            self._capability, settled_margin - liquidator_fee
        )

        self._vault.delete_position(self._capability, token_id)
        if self._limit_orders is not None:
            self._limit_orders.cancel_existing_limit_order(self._capability, token_id)
        self._registry.clear_locks(self._capability, token_id)
        self._registry.burn(self._capability, token_id)

        self._vault.send_collateral(self._capability, caller, liquidator_fee)

        logger.info(
            "position_liquidated",
            token_id=token_id,
            liquidator=caller,
            price=price,
            settled_margin=settled_margin,
            liquidator_fee=liquidator_fee,
        )
        return liquidator_fee

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    def _set_config(self, caller: str, **changes) -> None:
        if caller != self._vault.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)
        try:
            self.config = replace(self.config, **changes)
        except ValueError as exc:
            raise ValidationFailure(ErrorCode.INVALID_CONFIG, str(exc)) from exc
        logger.info("liquidation_config_updated", **changes)

    @entry_point
    def set_liquidation_fee_ratio(self, caller: str, fee_ratio: int) -> None:
        self._set_config(caller, fee_ratio=fee_ratio)

    @entry_point
    def set_liquidation_buffer_ratio(self, caller: str, buffer_ratio: int) -> None:
        self._set_config(caller, buffer_ratio=buffer_ratio)

    @entry_point
    def set_liquidation_fee_bounds(self, caller: str, fee_lower_bound: int, fee_upper_bound: int) -> None:
        self._set_config(caller, fee_lower_bound=fee_lower_bound, fee_upper_bound=fee_upper_bound)

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> LiquidationConfig:
        return self.config

    def restore(self, state: LiquidationConfig) -> None:
        self.config = state

"""
LimitOrderBook — лимитные ордера на закрытие позиции

Один ордер на позицию (по token_id). Пара порогов:
- price <= price_lower_threshold: stop-loss, закрытие по текущей цене
- price >= price_upper_threshold: take-profit, закрытие ровно по порогу
- между порогами → LimitOrderPriceNotInRange

Keeper fee не фиксируется при announce: при исполнении берётся текущая
котировка. Лимитные ордера не истекают; позиция блокируется ключом
LIMIT_ORDER до исполнения или отмены.
"""

from typing import Sequence

from src.core.clock import Clock
from src.core.domain.order import LimitOrder
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    TimingViolation,
    ValidationFailure,
)
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.oracle.feeds import PriceUpdate
from src.orders.keeper_fee import KeeperFeeQuote
from src.positions.lifecycle import PositionLifecycle
from src.positions.registry import PositionRegistry
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)


class LimitOrderBook:
    """Stop-loss / take-profit ордера по token_id."""

    def __init__(
        self,
        capability: ModuleCapability,
        vault: Vault,
        registry: PositionRegistry,
        lifecycle: PositionLifecycle,
        oracle: OracleAdapter,
        keeper_fee: KeeperFeeQuote,
        clock: Clock,
        journal: Journal,
    ):
        self._capability = capability
        self._vault = vault
        self._registry = registry
        self._lifecycle = lifecycle
        self._oracle = oracle
        self._keeper_fee = keeper_fee
        self._clock = clock
        self._journal = journal
        self._orders: dict[int, LimitOrder] = {}

    def get_limit_order(self, token_id: int) -> LimitOrder | None:
        return self._orders.get(token_id)

    def _require_owner(self, account: str, token_id: int) -> None:
        if self._registry.owner_of(token_id) != account:
            raise AuthorizationFailure(ErrorCode.NOT_TOKEN_OWNER, account=account, token_id=token_id)

    # -------------------------------------------------------------------------
    # Announce / cancel
    # -------------------------------------------------------------------------

    @entry_point
    def announce_limit_order(
        self,
        account: str,
        token_id: int,
        price_lower_threshold: int,
        price_upper_threshold: int,
    ) -> LimitOrder:
        """
        Новый или заменяющий лимитный ордер.

        Raises:
            AuthorizationFailure: NotTokenOwner / ModulePaused
            ValidationFailure: InvalidThresholds
        """
        self._vault.require_not_paused(ModuleKey.LIMIT_ORDER)
        self._vault.require_not_paused(ModuleKey.LEVERAGE)
        self._require_owner(account, token_id)
        if price_lower_threshold >= price_upper_threshold:
            raise ValidationFailure(
                ErrorCode.INVALID_THRESHOLDS,
                price_lower_threshold=price_lower_threshold,
                price_upper_threshold=price_upper_threshold,
            )

        order = LimitOrder(
            token_id=token_id,
            price_lower_threshold=price_lower_threshold,
            price_upper_threshold=price_upper_threshold,
            executable_at_time=self._clock.now() + self._vault.config.min_executability_age,
        )
        self._orders[token_id] = order
        self._registry.lock(self._capability, token_id)

        logger.info(
            "limit_order_announced",
            account=account,
            token_id=token_id,
            price_lower_threshold=price_lower_threshold,
            price_upper_threshold=price_upper_threshold,
        )
        return order

    @entry_point
    def cancel_limit_order(self, account: str, token_id: int) -> None:
        """Отмена владельцем."""
        self._require_owner(account, token_id)
        if token_id not in self._orders:
            raise ValidationFailure(ErrorCode.LIMIT_ORDER_NOT_FOUND, token_id=token_id)
        self._delete(token_id)
        logger.info("limit_order_cancelled", account=account, token_id=token_id)

    def cancel_existing_limit_order(self, capability: ModuleCapability, token_id: int) -> bool:
        """
        Отмена при закрытии / ликвидации позиции другим модулем.

        Returns:
            True если ордер существовал
        """
        self._vault.require_module(capability)
        if token_id not in self._orders:
            return False
        self._delete(token_id)
        return True

    def _delete(self, token_id: int) -> None:
        del self._orders[token_id]
        if self._registry.exists(token_id):
            self._registry.unlock(self._capability, token_id)

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    @entry_point
    def execute_limit_order(
        self,
        keeper: str,
        token_id: int,
        price_updates: Sequence[PriceUpdate] | None = None,
        update_fee: int = 0,
    ) -> int:
        """
        Закрытие позиции по достижении порога.

        Returns:
            Сумма, выплаченная владельцу позиции

        Raises:
            ValidationFailure: LimitOrderNotFound
            TimingViolation: ExecutableTimeNotReached
            EconomicGuardrail: LimitOrderPriceNotInRange
        """
        self._vault.require_not_paused(ModuleKey.LIMIT_ORDER)
        if price_updates:
            self._oracle.update_pull_price(price_updates, update_fee)
        self._vault.accrue_funding(self._capability)

        order = self._orders.get(token_id)
        if order is None:
            raise ValidationFailure(ErrorCode.LIMIT_ORDER_NOT_FOUND, token_id=token_id)

        now = self._clock.now()
        if now < order.executable_at_time:
            raise TimingViolation(
                ErrorCode.EXECUTABLE_TIME_NOT_REACHED,
                token_id=token_id,
                executable_at_time=order.executable_at_time,
            )

        price, _ = self._oracle.get_price(max_age=now - order.executable_at_time)
        if price <= order.price_lower_threshold:
            fill_price = price
            min_fill_price = 0
        elif price >= order.price_upper_threshold:
            fill_price = order.price_upper_threshold
            min_fill_price = order.price_upper_threshold
        else:
            raise EconomicGuardrail(
                ErrorCode.LIMIT_ORDER_PRICE_NOT_IN_RANGE,
                price=price,
                price_lower_threshold=order.price_lower_threshold,
                price_upper_threshold=order.price_upper_threshold,
            )

        position = self._vault.get_position(token_id)
        if position is None:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id)
        owner = self._registry.owner_of(token_id)
        trade_fee = self._lifecycle.get_trade_fee(position.additional_size)
        keeper_fee = self._keeper_fee.get_keeper_fee(price)

        self._delete(token_id)

        amount_out = self._lifecycle.execute_close(
            self._capability,
            owner,
            keeper,
            token_id,
            min_fill_price,
            trade_fee,
            keeper_fee,
            fill_price,
        )
        logger.info(
            "limit_order_executed",
            token_id=token_id,
            keeper=keeper,
            price=price,
            fill_price=fill_price,
        )
        return amount_out

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict[int, LimitOrder]:
        return dict(self._orders)

    def restore(self, state: dict[int, LimitOrder]) -> None:
        self._orders = dict(state)

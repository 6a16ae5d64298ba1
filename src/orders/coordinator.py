"""
OrderCoordinator — двухфазный протокол delayed ордеров

Announce (deposit / withdraw / open / adjust / close):
1. Модуль не на паузе, keeper_fee >= текущей котировки (иначе InvalidFee)
2. Settlement funding (до любых проверок skew)
3. Истёкший предыдущий ордер аккаунта отменяется; неистёкший → OrderHasNotExpired
4. Предварительные проверки по текущему состоянию (не обязывающие)
5. Escrow collateral в Vault / блокировка долей или позиции
6. executable_at_time = now + min_executability_age

Execute (любой keeper):
1. Опциональный update pull-фида, settlement funding
2. now > executable_at_time + max_executability_age → OrderHasExpired
   now < executable_at_time → ExecutableTimeNotReached
3. Цена с max_age = now - executable_at_time (не старше начала окна)
4. Ордер удаляется ДО любых исходящих переводов
5. Авторитетные проверки и мутация в StablePool / PositionLifecycle

Cancel: кто угодно, только после истечения окна; escrow возвращается.
"""

from typing import Sequence

from src.core.clock import Clock
from src.core.domain.order import (
    AnnouncedLeverageAdjust,
    AnnouncedLeverageClose,
    AnnouncedLeverageOpen,
    AnnouncedStableDeposit,
    AnnouncedStableWithdraw,
    Order,
    OrderPayload,
    OrderType,
)
from src.core.domain.position import Position
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    TimingViolation,
    ValidationFailure,
)
from src.core.math import perp_math
from src.core.transaction import Journal, entry_point
from src.liquidation.engine import LiquidationEngine
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.oracle.feeds import PriceUpdate
from src.orders.keeper_fee import KeeperFeeQuote
from src.positions.lifecycle import PositionLifecycle
from src.positions.registry import PositionRegistry
from src.stable.pool import StablePool
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)


class OrderCoordinator:
    """Announce / execute / cancel delayed ордеров (по одному на аккаунт)."""

    def __init__(
        self,
        capability: ModuleCapability,
        vault: Vault,
        registry: PositionRegistry,
        lifecycle: PositionLifecycle,
        pool: StablePool,
        liquidation: LiquidationEngine,
        oracle: OracleAdapter,
        keeper_fee: KeeperFeeQuote,
        clock: Clock,
        journal: Journal,
    ):
        self._capability = capability
        self._vault = vault
        self._registry = registry
        self._lifecycle = lifecycle
        self._pool = pool
        self._liquidation = liquidation
        self._oracle = oracle
        self._keeper_fee = keeper_fee
        self._clock = clock
        self._journal = journal
        self._orders: dict[str, Order] = {}

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_announced_order(self, account: str) -> Order | None:
        return self._orders.get(account)

    def has_order_expired(self, account: str) -> bool:
        """Истёк ли ордер аккаунта (нет ордера → False)."""
        order = self._orders.get(account)
        if order is None:
            return False
        return self._clock.now() > order.expires_at(self._vault.config.max_executability_age)

    # -------------------------------------------------------------------------
    # Announce helpers
    # -------------------------------------------------------------------------

    def _prepare_announcement(self, account: str, keeper_fee: int, module: ModuleKey) -> None:
        self._vault.require_not_paused(ModuleKey.DELAYED_ORDER)
        self._vault.require_not_paused(module)
        if not account:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "account")

        quote = self._keeper_fee.get_keeper_fee()
        if keeper_fee < quote:
            raise ValidationFailure(
                ErrorCode.INVALID_FEE, "keeper fee below quote", keeper_fee=keeper_fee, quote=quote
            )

        self._vault.accrue_funding(self._capability)
        self._cancel_existing_order(account)

    @staticmethod
    def _require_positive(**values: int) -> None:
        for name, value in values.items():
            if value <= 0:
                raise ValidationFailure(ErrorCode.ZERO_VALUE, name, **{name: value})

    def _record(self, account: str, order_type: OrderType, payload: OrderPayload, keeper_fee: int) -> Order:
        order = Order(
            order_type=order_type,
            payload=payload,
            keeper_fee=keeper_fee,
            executable_at_time=self._clock.now() + self._vault.config.min_executability_age,
        )
        self._orders[account] = order
        logger.info(
            "order_announced",
            account=account,
            order_type=order_type.value,
            keeper_fee=keeper_fee,
            executable_at_time=order.executable_at_time,
        )
        return order

    def _require_token_owner(self, account: str, token_id: int) -> Position:
        if self._registry.owner_of(token_id) != account:
            raise AuthorizationFailure(ErrorCode.NOT_TOKEN_OWNER, account=account, token_id=token_id)
        position = self._vault.get_position(token_id)
        if position is None:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id)
        return position

    def _check_bad_debt_preview(self, position: Position, price: int) -> None:
        if self._liquidation.can_liquidate_position(position, price):
            raise EconomicGuardrail(ErrorCode.POSITION_CREATES_BAD_DEBT, price=price)

    # -------------------------------------------------------------------------
    # Announce
    # -------------------------------------------------------------------------

    @entry_point
    def announce_stable_deposit(
        self, account: str, deposit_amount: int, min_amount_out: int, keeper_fee: int
    ) -> Order:
        """Депозит LP: escrow deposit_amount + keeper_fee."""
        self._prepare_announcement(account, keeper_fee, ModuleKey.STABLE)
        self._require_positive(deposit_amount=deposit_amount)
        payload = AnnouncedStableDeposit(deposit_amount=deposit_amount, min_amount_out=min_amount_out)

        self._vault.check_collateral_cap(deposit_amount)
        quoted = self._pool.stable_deposit_quote(deposit_amount)
        if quoted < min_amount_out:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE, amount_out=quoted, min_amount_out=min_amount_out
            )

        self._vault.collect_collateral(self._capability, account, deposit_amount + keeper_fee)
        return self._record(account, OrderType.STABLE_DEPOSIT, payload, keeper_fee)

    @entry_point
    def announce_stable_withdraw(
        self, account: str, withdraw_amount: int, min_amount_out: int, keeper_fee: int
    ) -> Order:
        """Вывод LP: доли блокируются до исполнения."""
        self._prepare_announcement(account, keeper_fee, ModuleKey.STABLE)
        self._require_positive(withdraw_amount=withdraw_amount)
        payload = AnnouncedStableWithdraw(
            withdraw_amount=withdraw_amount, min_amount_out=min_amount_out
        )

        shares = self._pool.shares
        if withdraw_amount > shares.unlocked_balance_of(account):
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                "withdraw exceeds unlocked shares",
                unlocked=shares.unlocked_balance_of(account),
                withdraw_amount=withdraw_amount,
            )
        amount_out, withdraw_fee = self._pool.stable_withdraw_quote(withdraw_amount)
        total_fee = withdraw_fee + keeper_fee
        if amount_out < total_fee:
            raise EconomicGuardrail(
                ErrorCode.NOT_ENOUGH_MARGIN_FOR_FEES, amount_out=amount_out, total_fee=total_fee
            )
        if amount_out - total_fee < min_amount_out:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE,
                amount_out=amount_out - total_fee,
                min_amount_out=min_amount_out,
            )

        shares.lock(self._capability, account, withdraw_amount)
        return self._record(account, OrderType.STABLE_WITHDRAW, payload, keeper_fee)

    @entry_point
    def announce_leverage_open(
        self,
        account: str,
        margin: int,
        additional_size: int,
        max_fill_price: int,
        keeper_fee: int,
    ) -> Order:
        """Открытие позиции: escrow margin + trade_fee + keeper_fee."""
        self._prepare_announcement(account, keeper_fee, ModuleKey.LEVERAGE)
        self._require_positive(
            margin=margin, additional_size=additional_size, max_fill_price=max_fill_price
        )
        trade_fee = self._lifecycle.get_trade_fee(additional_size)
        payload = AnnouncedLeverageOpen(
            margin=margin,
            additional_size=additional_size,
            max_fill_price=max_fill_price,
            trade_fee=trade_fee,
        )

        price, _ = self._oracle.get_price()
        if max_fill_price < price:
            raise EconomicGuardrail(
                ErrorCode.MAX_FILL_PRICE_TOO_LOW, max_fill_price=max_fill_price, price=price
            )
        self._vault.check_skew_max(additional_size)
        self._lifecycle.check_leverage_criteria(margin, additional_size)
        self._check_bad_debt_preview(
            Position(
                entry_price=price,
                margin_deposited=margin,
                additional_size=additional_size,
                entry_cumulative_funding=self._vault.next_funding_entry(),
            ),
            price,
        )

        self._vault.collect_collateral(self._capability, account, margin + trade_fee + keeper_fee)
        return self._record(account, OrderType.LEVERAGE_OPEN, payload, keeper_fee)

    @entry_point
    def announce_leverage_adjust(
        self,
        account: str,
        token_id: int,
        margin_adjustment: int,
        additional_size_adjustment: int,
        fill_price: int,
        keeper_fee: int,
    ) -> Order:
        """
        Изменение позиции.

        fill_price — максимальная цена при увеличении size и минимальная
        при уменьшении. Позиция блокируется до исполнения/отмены.
        """
        self._prepare_announcement(account, keeper_fee, ModuleKey.LEVERAGE)
        position = self._require_token_owner(account, token_id)
        if margin_adjustment == 0 and additional_size_adjustment == 0:
            raise ValidationFailure(ErrorCode.ZERO_VALUE, "margin and size adjustments")
        self._require_positive(fill_price=fill_price)

        price, _ = self._oracle.get_price()
        if additional_size_adjustment > 0:
            if fill_price < price:
                raise EconomicGuardrail(
                    ErrorCode.MAX_FILL_PRICE_TOO_LOW, max_fill_price=fill_price, price=price
                )
            self._vault.check_skew_max(additional_size_adjustment)
        elif additional_size_adjustment < 0 and fill_price > price:
            raise EconomicGuardrail(
                ErrorCode.MIN_FILL_PRICE_TOO_HIGH, min_fill_price=fill_price, price=price
            )

        trade_fee = self._lifecycle.get_trade_fee(additional_size_adjustment)
        total_fee = trade_fee + keeper_fee
        payload = AnnouncedLeverageAdjust(
            token_id=token_id,
            margin_adjustment=margin_adjustment,
            additional_size_adjustment=additional_size_adjustment,
            fill_price=fill_price,
            trade_fee=trade_fee,
            total_fee=total_fee,
        )

        next_cumulative = self._vault.next_funding_entry()
        summary = perp_math.position_summary(position, next_cumulative, price)
        if margin_adjustment > 0:
            new_margin = summary.margin_after_settlement + margin_adjustment
        else:
            new_margin = summary.margin_after_settlement + margin_adjustment - total_fee
        new_size = position.additional_size + additional_size_adjustment
        if new_margin <= 0:
            raise ValidationFailure(ErrorCode.VALUE_NOT_POSITIVE, "new margin", new_margin=new_margin)
        if new_size <= 0:
            raise ValidationFailure(ErrorCode.VALUE_NOT_POSITIVE, "new size", new_size=new_size)
        self._lifecycle.check_leverage_criteria(new_margin, new_size)
        self._check_bad_debt_preview(
            Position(
                entry_price=price,
                margin_deposited=new_margin,
                additional_size=new_size,
                entry_cumulative_funding=next_cumulative,
            ),
            price,
        )

        if margin_adjustment > 0:
            self._vault.collect_collateral(
                self._capability, account, margin_adjustment + total_fee
            )
        self._registry.lock(self._capability, token_id)
        return self._record(account, OrderType.LEVERAGE_ADJUST, payload, keeper_fee)

    @entry_point
    def announce_leverage_close(
        self, account: str, token_id: int, min_fill_price: int, keeper_fee: int
    ) -> Order:
        """Закрытие позиции: позиция блокируется, комиссии берутся из маржи."""
        self._prepare_announcement(account, keeper_fee, ModuleKey.LEVERAGE)
        position = self._require_token_owner(account, token_id)

        price, _ = self._oracle.get_price()
        if min_fill_price > price:
            raise EconomicGuardrail(
                ErrorCode.MIN_FILL_PRICE_TOO_HIGH, min_fill_price=min_fill_price, price=price
            )

        trade_fee = self._lifecycle.get_trade_fee(position.additional_size)
        summary = perp_math.position_summary(position, self._vault.next_funding_entry(), price)
        if summary.margin_after_settlement < trade_fee + keeper_fee:
            raise EconomicGuardrail(
                ErrorCode.NOT_ENOUGH_MARGIN_FOR_FEES,
                settled_margin=summary.margin_after_settlement,
                total_fee=trade_fee + keeper_fee,
            )

        payload = AnnouncedLeverageClose(
            token_id=token_id, min_fill_price=min_fill_price, trade_fee=trade_fee
        )
        self._registry.lock(self._capability, token_id)
        return self._record(account, OrderType.LEVERAGE_CLOSE, payload, keeper_fee)

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    @entry_point
    def execute_order(
        self,
        keeper: str,
        account: str,
        price_updates: Sequence[PriceUpdate] | None = None,
        update_fee: int = 0,
    ) -> None:
        """
        Исполнение ордера аккаунта keeper'ом.

        Raises:
            ValidationFailure: OrderNotFound
            TimingViolation: ExecutableTimeNotReached / OrderHasExpired
            OracleFailure: цена старше начала окна исполнения
        """
        self._vault.require_not_paused(ModuleKey.DELAYED_ORDER)
        if price_updates:
            self._oracle.update_pull_price(price_updates, update_fee)
        self._vault.accrue_funding(self._capability)

        order = self._orders.get(account)
        if order is None:
            raise ValidationFailure(ErrorCode.ORDER_NOT_FOUND, account=account)

        now = self._clock.now()
        if now > order.expires_at(self._vault.config.max_executability_age):
            raise TimingViolation(
                ErrorCode.ORDER_HAS_EXPIRED, account=account, executable_at_time=order.executable_at_time
            )
        if now < order.executable_at_time:
            raise TimingViolation(
                ErrorCode.EXECUTABLE_TIME_NOT_REACHED,
                account=account,
                executable_at_time=order.executable_at_time,
            )

        price, _ = self._oracle.get_price(max_age=now - order.executable_at_time)

        del self._orders[account]

        payload = order.payload
        if isinstance(payload, AnnouncedStableDeposit):
            self._execute_stable_deposit(keeper, account, order, payload, price)
        elif isinstance(payload, AnnouncedStableWithdraw):
            self._execute_stable_withdraw(keeper, account, order, payload, price)
        elif isinstance(payload, AnnouncedLeverageOpen):
            self._lifecycle.execute_open(self._capability, account, keeper, order, price)
        elif isinstance(payload, AnnouncedLeverageAdjust):
            self._registry.unlock(self._capability, payload.token_id)
            self._lifecycle.execute_adjust(self._capability, account, keeper, order, price)
        elif isinstance(payload, AnnouncedLeverageClose):
            self._registry.unlock(self._capability, payload.token_id)
            self._lifecycle.execute_close(
                self._capability,
                account,
                keeper,
                payload.token_id,
                payload.min_fill_price,
                payload.trade_fee,
                order.keeper_fee,
                price,
            )

        logger.info(
            "order_executed",
            account=account,
            keeper=keeper,
            order_type=order.order_type.value,
            price=price,
        )

    def _execute_stable_deposit(
        self,
        keeper: str,
        account: str,
        order: Order,
        payload: AnnouncedStableDeposit,
        price: int,
    ) -> None:
        self._vault.check_collateral_cap(payload.deposit_amount)
        self._pool.execute_deposit(self._capability, account, payload, price)
        self._vault.send_collateral(self._capability, keeper, order.keeper_fee)

    def _execute_stable_withdraw(
        self,
        keeper: str,
        account: str,
        order: Order,
        payload: AnnouncedStableWithdraw,
        price: int,
    ) -> None:
        amount_out, withdraw_fee = self._pool.execute_withdraw(
            self._capability, account, payload, price
        )

        # Пул уменьшился: доля лонгов не должна превысить предел
        if self._vault.global_positions.size_opened_total > 0:
            self._vault.check_skew_max(0)

        self._vault.update_stable_collateral_total(self._capability, withdraw_fee)

        total_fee = withdraw_fee + order.keeper_fee
        if amount_out < total_fee:
            raise EconomicGuardrail(
                ErrorCode.NOT_ENOUGH_MARGIN_FOR_FEES, amount_out=amount_out, total_fee=total_fee
            )
        if amount_out - total_fee < payload.min_amount_out:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE,
                amount_out=amount_out - total_fee,
                min_amount_out=payload.min_amount_out,
            )

        self._vault.send_collateral(self._capability, keeper, order.keeper_fee)
        self._vault.send_collateral(self._capability, account, amount_out - total_fee)

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    @entry_point
    def cancel_existing_order(self, account: str) -> None:
        """
        Отмена истёкшего ордера аккаунта (может вызвать кто угодно).

        Raises:
            TimingViolation: OrderHasNotExpired
        """
        self._cancel_existing_order(account)

    def _cancel_existing_order(self, account: str) -> None:
        order = self._orders.get(account)
        if order is None:
            return

        if self._clock.now() <= order.expires_at(self._vault.config.max_executability_age):
            raise TimingViolation(
                ErrorCode.ORDER_HAS_NOT_EXPIRED,
                account=account,
                executable_at_time=order.executable_at_time,
            )

        del self._orders[account]

        payload = order.payload
        if isinstance(payload, AnnouncedStableDeposit):
            self._vault.send_collateral(
                self._capability, account, payload.deposit_amount + order.keeper_fee
            )
        elif isinstance(payload, AnnouncedStableWithdraw):
            self._pool.shares.unlock(self._capability, account, payload.withdraw_amount)
        elif isinstance(payload, AnnouncedLeverageOpen):
            self._vault.send_collateral(
                self._capability,
                account,
                payload.margin + payload.trade_fee + order.keeper_fee,
            )
        elif isinstance(payload, AnnouncedLeverageAdjust):
            if self._registry.exists(payload.token_id):
                self._registry.unlock(self._capability, payload.token_id)
            if payload.margin_adjustment > 0:
                self._vault.send_collateral(
                    self._capability, account, payload.margin_adjustment + payload.total_fee
                )
        elif isinstance(payload, AnnouncedLeverageClose):
            if self._registry.exists(payload.token_id):
                self._registry.unlock(self._capability, payload.token_id)

        logger.info("order_cancelled", account=account, order_type=order.order_type.value)

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict[str, Order]:
        return dict(self._orders)

    def restore(self, state: dict[str, Order]) -> None:
        self._orders = dict(state)

"""
Тесты LimitOrderBook

Проверяет:
1. Announce: только владелец, lower < upper, позиция блокируется
2. Исполнение: stop-loss по текущей цене, take-profit ровно по порогу
3. Цена между порогами → LimitOrderPriceNotInRange
4. Отмена владельцем, автоматическая отмена при закрытии позиции
5. Взаимодействие с блокировкой delayed ордера
"""

import pytest

from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    TimingViolation,
    ValidationFailure,
)
from src.core.math.fixed_point import to_wad
from src.vault import ModuleKey
from tests.conftest import ALICE, BOB, CAROL, KEEPER, OWNER, assert_conserved

LOWER = to_wad(900)
UPPER = to_wad(1100)


@pytest.fixture
def position(flat_harness) -> int:
    """Пул 100 от ALICE, лонг BOB 10/30 при цене 1000."""
    flat_harness.deposit(ALICE, to_wad(100))
    return flat_harness.open_position(BOB, to_wad(10), to_wad(30))


class TestAnnounce:
    """Создание и замена лимитного ордера"""

    def test_announce_locks_position(self, flat_harness, position) -> None:
        """Ордер записан, позиция заблокирована модулем лимитных ордеров"""
        market = flat_harness.market
        order = market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)

        assert market.limit_orders.get_limit_order(position) == order
        assert order.executable_at_time == flat_harness.clock.now() + 5
        assert market.registry.locked_by(position) == frozenset({ModuleKey.LIMIT_ORDER})

        with pytest.raises(AuthorizationFailure) as exc_info:
            market.registry.transfer(BOB, position, CAROL)
        assert exc_info.value.code is ErrorCode.TOKEN_LOCKED

    def test_replace_existing(self, flat_harness, position) -> None:
        """Повторный announce заменяет пороги"""
        limit_orders = flat_harness.market.limit_orders
        limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        limit_orders.announce_limit_order(BOB, position, to_wad(800), to_wad(1200))

        assert limit_orders.get_limit_order(position).price_lower_threshold == to_wad(800)

    def test_invalid_thresholds(self, flat_harness, position) -> None:
        """lower >= upper → InvalidThresholds"""
        with pytest.raises(ValidationFailure) as exc_info:
            flat_harness.market.limit_orders.announce_limit_order(BOB, position, UPPER, UPPER)
        assert exc_info.value.code is ErrorCode.INVALID_THRESHOLDS

    def test_not_owner(self, flat_harness, position) -> None:
        """Чужая позиция → NotTokenOwner"""
        with pytest.raises(AuthorizationFailure) as exc_info:
            flat_harness.market.limit_orders.announce_limit_order(CAROL, position, LOWER, UPPER)
        assert exc_info.value.code is ErrorCode.NOT_TOKEN_OWNER

    def test_paused(self, flat_harness, position) -> None:
        """Пауза модуля → ModulePaused"""
        market = flat_harness.market
        market.vault.pause_module(OWNER, ModuleKey.LIMIT_ORDER)
        with pytest.raises(AuthorizationFailure) as exc_info:
            market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        assert exc_info.value.code is ErrorCode.MODULE_PAUSED

    def test_leverage_pause_blocks_announce(self, flat_harness, position) -> None:
        """Пауза LEVERAGE → ModulePaused, позиция не блокируется"""
        market = flat_harness.market
        market.vault.pause_module(OWNER, ModuleKey.LEVERAGE)
        with pytest.raises(AuthorizationFailure) as exc_info:
            market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        assert exc_info.value.code is ErrorCode.MODULE_PAUSED
        assert not market.registry.is_locked(position)


class TestExecute:
    """Исполнение по порогам"""

    def test_too_early(self, flat_harness, position) -> None:
        """До min_executability_age → ExecutableTimeNotReached"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        with pytest.raises(TimingViolation) as exc_info:
            market.limit_orders.execute_limit_order(KEEPER, position)
        assert exc_info.value.code is ErrorCode.EXECUTABLE_TIME_NOT_REACHED

    def test_price_between_thresholds(self, flat_harness, position) -> None:
        """lower < price < upper → LimitOrderPriceNotInRange"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        flat_harness.advance(5)
        with pytest.raises(EconomicGuardrail) as exc_info:
            market.limit_orders.execute_limit_order(KEEPER, position)
        assert exc_info.value.code is ErrorCode.LIMIT_ORDER_PRICE_NOT_IN_RANGE
        assert market.limit_orders.get_limit_order(position) is not None

    def test_take_profit_fills_at_threshold(self, flat_harness, position) -> None:
        """Цена 1200 при upper 1100 → закрытие по 1100"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        flat_harness.set_price(to_wad(1200))
        flat_harness.advance(5)
        keeper_fee = flat_harness.keeper_fee()
        before = flat_harness.balance(BOB)

        paid = market.limit_orders.execute_limit_order(KEEPER, position)

        pnl = to_wad(30) * to_wad(100) // to_wad(1100)
        expected = to_wad(10) + pnl - to_wad("0.03") - keeper_fee
        assert paid == expected
        assert flat_harness.balance(BOB) - before == expected
        assert market.vault.get_position(position) is None
        assert market.limit_orders.get_limit_order(position) is None
        assert_conserved(market)

    def test_stop_loss_fills_at_market(self, flat_harness, position) -> None:
        """Цена 850 при lower 900 → закрытие по 850"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        flat_harness.set_price(to_wad(850))
        flat_harness.advance(5)
        keeper_fee = flat_harness.keeper_fee()

        paid = market.limit_orders.execute_limit_order(KEEPER, position)

        pnl = to_wad(30) * (to_wad(850) - to_wad(1000)) // to_wad(850)
        assert paid == to_wad(10) + pnl - to_wad("0.03") - keeper_fee
        assert not market.registry.exists(position)
        assert_conserved(market)

    def test_missing_order(self, flat_harness, position) -> None:
        """Нет ордера → LimitOrderNotFound"""
        with pytest.raises(ValidationFailure) as exc_info:
            flat_harness.market.limit_orders.execute_limit_order(KEEPER, position)
        assert exc_info.value.code is ErrorCode.LIMIT_ORDER_NOT_FOUND

    def test_leverage_pause_blocks_execution(self, flat_harness, position) -> None:
        """Пауза LEVERAGE: stop-loss не исполняется, ордер и позиция остаются"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        flat_harness.set_price(to_wad(850))
        flat_harness.advance(5)
        market.vault.pause_module(OWNER, ModuleKey.LEVERAGE)

        with pytest.raises(AuthorizationFailure) as exc_info:
            market.limit_orders.execute_limit_order(KEEPER, position)

        assert exc_info.value.code is ErrorCode.MODULE_PAUSED
        assert market.vault.get_position(position) is not None
        assert market.limit_orders.get_limit_order(position) is not None
        assert_conserved(market)


class TestCancel:
    """Отмена"""

    def test_owner_cancels(self, flat_harness, position) -> None:
        """Отмена снимает блокировку; повторная → LimitOrderNotFound"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)

        market.limit_orders.cancel_limit_order(BOB, position)
        assert market.limit_orders.get_limit_order(position) is None
        assert not market.registry.is_locked(position)

        with pytest.raises(ValidationFailure) as exc_info:
            market.limit_orders.cancel_limit_order(BOB, position)
        assert exc_info.value.code is ErrorCode.LIMIT_ORDER_NOT_FOUND

    def test_delayed_close_removes_limit_order(self, flat_harness, position) -> None:
        """Закрытие delayed ордером удаляет лимитный ордер"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)

        flat_harness.close_position(BOB, position)

        assert market.limit_orders.get_limit_order(position) is None
        assert not market.registry.exists(position)
        assert_conserved(market)

    def test_pending_delayed_close_blocks_execution(self, flat_harness, position) -> None:
        """Блокировка delayed ордера не даёт исполнить лимитный → TokenLocked"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, LOWER, UPPER)
        market.orders.announce_leverage_close(BOB, position, 0, flat_harness.keeper_fee())

        flat_harness.set_price(to_wad(1200))
        flat_harness.advance(5)
        with pytest.raises(AuthorizationFailure) as exc_info:
            market.limit_orders.execute_limit_order(KEEPER, position)

        assert exc_info.value.code is ErrorCode.TOKEN_LOCKED
        assert market.limit_orders.get_limit_order(position) is not None
        assert market.vault.get_position(position) is not None

"""
Тесты LiquidationEngine

Проверяет:
1. Здоровая позиция → CannotLiquidate
2. Распределение: комиссия ликвидатору, остаток в пул
3. Комиссия ограничена settled margin; bad debt поглощается пулом;
   M уменьшается на полную settled margin, итог как при раздельном учёте
4. Ликвидация снимает все блокировки и лимитный ордер
5. Funding может сделать позицию ликвидируемой
6. Owner setters
"""

import pytest

from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math.fixed_point import to_wad
from src.vault import ModuleKey
from tests.conftest import ALICE, BOB, CAROL, OWNER, assert_conserved

DAY = 86_400


@pytest.fixture
def position(flat_harness) -> int:
    """Пул 100 от ALICE, лонг BOB 10/30 (4x) при цене 1000."""
    flat_harness.deposit(ALICE, to_wad(100))
    return flat_harness.open_position(BOB, to_wad(10), to_wad(30))


# =============================================================================
# LIQUIDATE
# =============================================================================


class TestLiquidate:
    """Исполнение ликвидации"""

    def test_healthy_position(self, flat_harness, position) -> None:
        """Маржа 10 → CannotLiquidate"""
        market = flat_harness.market
        assert not market.liquidation.can_liquidate(position)
        with pytest.raises(EconomicGuardrail) as exc_info:
            market.liquidation.liquidate(CAROL, position)
        assert exc_info.value.code is ErrorCode.CANNOT_LIQUIDATE

    def test_fee_to_liquidator(self, flat_harness, position) -> None:
        """Цена 755: ликвидатор получает полную комиссию"""
        market = flat_harness.market
        flat_harness.set_price(to_wad(755))
        assert market.liquidation.can_liquidate(position)

        fee = market.liquidation.liquidate(CAROL, position)

        assert fee == market.liquidation.liquidation_fee(to_wad(30), to_wad(755))
        assert flat_harness.balance(CAROL) == fee
        assert market.vault.get_position(position) is None
        assert not market.registry.exists(position)
        assert market.vault.global_positions.margin_deposited_total == 0
        assert market.vault.global_positions.size_opened_total == 0
        assert_conserved(market)

    def test_fee_capped_by_settled_margin(self, flat_harness, position) -> None:
        """Цена 751: settled margin меньше комиссии → ликвидатор получает всю маржу"""
        market = flat_harness.market
        flat_harness.set_price(to_wad(751))
        settled = market.lifecycle.get_position_summary(position).margin_after_settlement
        assert 0 < settled < market.liquidation.liquidation_fee(to_wad(30), to_wad(751))

        fee = market.liquidation.liquidate(CAROL, position)

        assert fee == settled
        assert_conserved(market)

    def test_bad_debt_absorbed_by_pool(self, flat_harness, position) -> None:
        """Цена 700: settled < 0, ликвидатор ничего не получает, пул теряет маржу"""
        market = flat_harness.market
        pool_before = market.vault.state.stable_collateral_total
        flat_harness.set_price(to_wad(700))

        fee = market.liquidation.liquidate(CAROL, position)

        assert fee == 0
        assert flat_harness.balance(CAROL) == 0
        assert market.vault.global_positions.margin_deposited_total == 0
        assert market.vault.state.stable_collateral_total == pool_before + to_wad(10)
        assert_conserved(market)

    def test_aggregates_match_separate_accounting(self, flat_harness) -> None:
        """
        Ликвидация снимает с M полную settled margin.

        BOB 7.7/30 и CAROL 5/5 по 1000, цена 800. В M остаётся ровно
        settled margin CAROL, пул получает маржу BOB без комиссии
        и реализованный убыток CAROL.
        """
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        bob_position = flat_harness.open_position(BOB, to_wad("7.7"), to_wad(30))
        carol_position = flat_harness.open_position(CAROL, to_wad(5), to_wad(5))
        pool_before = market.vault.state.stable_collateral_total

        flat_harness.set_price(to_wad(800))
        assert market.liquidation.can_liquidate(bob_position)
        fee = market.liquidation.liquidate(OWNER, bob_position)

        assert fee == min(market.liquidation.liquidation_fee(to_wad(30), to_wad(800)), to_wad("0.2"))
        carol_settled = market.lifecycle.get_position_summary(carol_position).margin_after_settlement
        assert carol_settled == to_wad("3.75")
        assert market.vault.global_positions.margin_deposited_total == carol_settled
        assert market.vault.state.stable_collateral_total == pool_before + to_wad("7.7") - fee + to_wad("1.25")
        assert_conserved(market)

    def test_clears_locks_and_limit_order(self, flat_harness, position) -> None:
        """Лимитный ордер удаляется, блокировки снимаются; delayed ордер потом отменяем"""
        market = flat_harness.market
        market.limit_orders.announce_limit_order(BOB, position, to_wad(500), to_wad(1100))
        market.orders.announce_leverage_close(BOB, position, 0, flat_harness.keeper_fee())
        flat_harness.set_price(to_wad(755))

        market.liquidation.liquidate(CAROL, position)

        assert market.limit_orders.get_limit_order(position) is None
        assert not market.registry.exists(position)

        flat_harness.advance(66)
        market.orders.cancel_existing_order(BOB)
        assert market.orders.get_announced_order(BOB) is None

    def test_missing_position(self, flat_harness) -> None:
        """Нет позиции → PositionNotFound; can_liquidate False"""
        market = flat_harness.market
        assert not market.liquidation.can_liquidate(99)
        with pytest.raises(ValidationFailure) as exc_info:
            market.liquidation.liquidate(CAROL, 99)
        assert exc_info.value.code is ErrorCode.POSITION_NOT_FOUND

    def test_paused(self, flat_harness, position) -> None:
        """Пауза ликвидаций → ModulePaused"""
        market = flat_harness.market
        market.vault.pause_module(OWNER, ModuleKey.LIQUIDATION)
        flat_harness.set_price(to_wad(700))
        with pytest.raises(AuthorizationFailure) as exc_info:
            market.liquidation.liquidate(CAROL, position)
        assert exc_info.value.code is ErrorCode.MODULE_PAUSED

    def test_funding_drives_liquidation(self, harness) -> None:
        """Лонги платят funding при положительном skew: через 10 дней маржа съедена"""
        market = harness.market
        harness.deposit(ALICE, to_wad(100))
        token_id = harness.open_position(BOB, to_wad(10), to_wad(110))
        assert not market.liquidation.can_liquidate(token_id)

        harness.advance(10 * DAY)
        assert market.liquidation.can_liquidate(token_id)

        market.liquidation.liquidate(CAROL, token_id)
        assert not market.registry.exists(token_id)
        assert market.vault.global_positions.size_opened_total == 0


# =============================================================================
# VIEWS / CONFIG
# =============================================================================


class TestViews:
    """Приближённая цена ликвидации"""

    def test_approx_price(self, flat_harness, position) -> None:
        """4x лонг от 1000 → между 750 и 755"""
        market = flat_harness.market
        price = market.liquidation.approx_liquidation_price(position)
        assert to_wad(750) < price < to_wad(755)
        assert market.liquidation.can_liquidate(position, price)

    def test_approx_price_missing_position(self, flat_harness) -> None:
        """Нет позиции → 0"""
        assert flat_harness.market.liquidation.approx_liquidation_price(42) == 0


class TestLiquidationConfig:
    """Owner setters"""

    def test_buffer_ratio_changes_margin(self, flat_harness) -> None:
        """buffer 1%: 0.3 + 0.1"""
        liquidation = flat_harness.market.liquidation
        liquidation.set_liquidation_buffer_ratio(OWNER, to_wad("0.01"))
        assert liquidation.liquidation_margin(to_wad(30), to_wad(1000)) == to_wad("0.4")

    def test_fee_bounds(self, flat_harness) -> None:
        """Новые границы комиссии в USD"""
        liquidation = flat_harness.market.liquidation
        liquidation.set_liquidation_fee_bounds(OWNER, to_wad(1), to_wad(50))
        assert liquidation.liquidation_fee(to_wad(30), to_wad(1000)) == to_wad("0.05")

    def test_invalid_values(self, flat_harness) -> None:
        """Нулевой fee ratio и lower > upper → InvalidConfig"""
        liquidation = flat_harness.market.liquidation
        with pytest.raises(ValidationFailure) as exc_info:
            liquidation.set_liquidation_fee_ratio(OWNER, 0)
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG
        with pytest.raises(ValidationFailure):
            liquidation.set_liquidation_fee_bounds(OWNER, to_wad(10), to_wad(5))
        assert liquidation.config.fee_ratio == to_wad("0.005")

    def test_non_owner(self, flat_harness) -> None:
        """Не владелец → OnlyOwner"""
        with pytest.raises(AuthorizationFailure) as exc_info:
            flat_harness.market.liquidation.set_liquidation_fee_ratio(BOB, to_wad("0.01"))
        assert exc_info.value.code is ErrorCode.ONLY_OWNER

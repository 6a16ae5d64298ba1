"""
Тесты StablePool и PoolShares

Проверяет:
1. Первый депозит выпускает доли 1:1
2. Стоимость доли учитывает PnL лонгов
3. Withdraw: комиссия остаётся в пуле, доли блокируются до исполнения
4. MIN_LIQUIDITY для ненулевого supply
5. Deposit cap, skew cap при выводе, slippage
6. Owner setter withdraw fee
"""

import pytest

from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math.fixed_point import WAD, to_wad
from src.stable.pool import MIN_LIQUIDITY
from tests.conftest import ALICE, BOB, CAROL, OWNER, assert_conserved


class TestValuation:
    """Стоимость доли"""

    def test_empty_pool_per_share(self, flat_harness) -> None:
        """Нет долей → 1e18"""
        assert flat_harness.market.pool.stable_collateral_per_share() == WAD

    def test_first_deposit_one_to_one(self, flat_harness) -> None:
        """100 collateral → 100 долей"""
        shares = flat_harness.deposit(ALICE, to_wad(100))
        assert shares == to_wad(100)
        assert flat_harness.market.vault.state.stable_collateral_total == to_wad(100)
        assert_conserved(flat_harness.market)

    def test_long_losses_raise_share_value(self, flat_harness) -> None:
        """Лонги в убытке → доля дороже, за 10 collateral меньше 10 долей"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        flat_harness.open_position(BOB, to_wad(10), to_wad(30))
        flat_harness.set_price(to_wad(900))

        quote = market.pool.stable_deposit_quote(to_wad(10))
        shares = flat_harness.deposit(CAROL, to_wad(10))

        assert shares == quote
        assert shares < to_wad(10)
        assert market.pool.stable_collateral_per_share() > WAD
        assert_conserved(market)

    def test_long_profits_lower_share_value(self, flat_harness) -> None:
        """Лонги в прибыли → доля дешевле"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        flat_harness.open_position(BOB, to_wad(10), to_wad(30))
        flat_harness.set_price(to_wad(1500))

        assert market.pool.stable_collateral_per_share() < WAD


class TestWithdraw:
    """Вывод LP"""

    def test_withdraw_half(self, flat_harness) -> None:
        """50 долей: 50 - 0.25 fee - keeper fee; fee остаётся в пуле"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))

        received = flat_harness.withdraw(ALICE, to_wad(50))

        assert received == to_wad("49.748")
        assert market.vault.state.stable_collateral_total == to_wad("50.25")
        assert market.shares.balance_of(ALICE) == to_wad(50)
        assert_conserved(market)

    def test_quote(self, flat_harness) -> None:
        """stable_withdraw_quote = (amount_out, fee)"""
        flat_harness.deposit(ALICE, to_wad(100))
        assert flat_harness.market.pool.stable_withdraw_quote(to_wad(50)) == (to_wad(50), to_wad("0.25"))

    def test_shares_locked_until_execution(self, flat_harness) -> None:
        """Заблокированные доли нельзя перевести"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        market.orders.announce_stable_withdraw(ALICE, to_wad(40), 0, flat_harness.keeper_fee())

        assert market.shares.locked_balance_of(ALICE) == to_wad(40)
        with pytest.raises(ValidationFailure) as exc_info:
            market.shares.transfer(ALICE, CAROL, to_wad(70))
        assert exc_info.value.code is ErrorCode.INSUFFICIENT_BALANCE

        market.shares.transfer(ALICE, CAROL, to_wad(60))
        assert market.shares.balance_of(CAROL) == to_wad(60)

    def test_expired_withdraw_unlocks(self, flat_harness) -> None:
        """Отмена истёкшего вывода снимает блокировку"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        market.orders.announce_stable_withdraw(ALICE, to_wad(40), 0, flat_harness.keeper_fee())

        flat_harness.advance(66)
        market.orders.cancel_existing_order(ALICE)

        assert market.shares.locked_balance_of(ALICE) == 0
        assert market.shares.balance_of(ALICE) == to_wad(100)

    def test_withdraw_exceeds_unlocked(self, flat_harness) -> None:
        """Больше незаблокированных долей → InsufficientBalance"""
        flat_harness.deposit(ALICE, to_wad(100))
        with pytest.raises(ValidationFailure) as exc_info:
            flat_harness.market.orders.announce_stable_withdraw(
                ALICE, to_wad(101), 0, flat_harness.keeper_fee()
            )
        assert exc_info.value.code is ErrorCode.INSUFFICIENT_BALANCE

    def test_withdraw_breaching_skew(self, flat_harness) -> None:
        """Вывод, после которого S / C > 1.2 → MaxSkewReached"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))
        flat_harness.open_position(BOB, to_wad(10), to_wad(100))

        with pytest.raises(EconomicGuardrail) as exc_info:
            flat_harness.withdraw(ALICE, to_wad(50))

        assert exc_info.value.code is ErrorCode.MAX_SKEW_REACHED
        assert market.shares.balance_of(ALICE) == to_wad(100)
        assert market.shares.locked_balance_of(ALICE) == to_wad(50)


class TestMinimumLiquidity:
    """MIN_LIQUIDITY"""

    def test_tiny_first_deposit(self, flat_harness) -> None:
        """Первый депозит меньше MIN_LIQUIDITY → AmountTooSmall"""
        with pytest.raises(ValidationFailure) as exc_info:
            flat_harness.deposit(ALICE, MIN_LIQUIDITY // 2)
        assert exc_info.value.code is ErrorCode.AMOUNT_TOO_SMALL

    def test_withdraw_leaving_dust(self, flat_harness) -> None:
        """Остаток supply 1 wei → AmountTooSmall"""
        flat_harness.deposit(ALICE, to_wad(100))
        with pytest.raises(ValidationFailure) as exc_info:
            flat_harness.withdraw(ALICE, to_wad(100) - 1)
        assert exc_info.value.code is ErrorCode.AMOUNT_TOO_SMALL

    def test_full_withdraw_allowed(self, flat_harness) -> None:
        """Полный вывод до нулевого supply допустим; fee остаётся в пуле"""
        market = flat_harness.market
        flat_harness.deposit(ALICE, to_wad(100))

        received = flat_harness.withdraw(ALICE, to_wad(100))

        assert received == to_wad("99.5") - flat_harness.keeper_fee()
        assert market.shares.total_supply == 0
        assert market.vault.state.stable_collateral_total == to_wad("0.5")
        assert_conserved(market)


class TestDepositGuards:
    """Cap и slippage"""

    def test_deposit_cap(self, flat_harness) -> None:
        """C + deposit > cap → DepositCapReached"""
        with pytest.raises(EconomicGuardrail) as exc_info:
            flat_harness.deposit(ALICE, to_wad(501))
        assert exc_info.value.code is ErrorCode.DEPOSIT_CAP_REACHED

    def test_deposit_at_cap(self, flat_harness) -> None:
        """Ровно cap допустим"""
        assert flat_harness.deposit(ALICE, to_wad(500)) == to_wad(500)

    def test_min_amount_out(self, flat_harness) -> None:
        """Котировка ниже min_amount_out → HighSlippage"""
        fee = flat_harness.keeper_fee()
        flat_harness.fund(ALICE, to_wad(100) + fee)
        with pytest.raises(EconomicGuardrail) as exc_info:
            flat_harness.market.orders.announce_stable_deposit(ALICE, to_wad(100), to_wad(100) + 1, fee)
        assert exc_info.value.code is ErrorCode.HIGH_SLIPPAGE


class TestWithdrawFee:
    """set_stable_withdraw_fee"""

    def test_owner_sets_fee(self, flat_harness) -> None:
        """0% .. 1%"""
        pool = flat_harness.market.pool
        pool.set_stable_withdraw_fee(OWNER, to_wad("0.01"))
        assert pool.config.withdraw_fee == to_wad("0.01")

    def test_fee_above_limit(self, flat_harness) -> None:
        """> 1% → InvalidFee, конфиг не меняется"""
        pool = flat_harness.market.pool
        with pytest.raises(ValidationFailure) as exc_info:
            pool.set_stable_withdraw_fee(OWNER, to_wad("0.011"))
        assert exc_info.value.code is ErrorCode.INVALID_FEE
        assert pool.config.withdraw_fee == to_wad("0.005")

    def test_non_owner(self, flat_harness) -> None:
        """Не владелец → OnlyOwner"""
        with pytest.raises(AuthorizationFailure) as exc_info:
            flat_harness.market.pool.set_stable_withdraw_fee(ALICE, 0)
        assert exc_info.value.code is ErrorCode.ONLY_OWNER

"""
Общие fixtures: полностью собранный рынок на ManualClock и in-memory фидах.

MarketHarness скрывает двухфазный протокол (announce → ожидание →
свежая цена → execute) за короткими хелперами для тестов.
"""

import pytest

from src.core.clock import ManualClock
from src.core.domain.order import OrderType
from src.core.math.fixed_point import to_wad
from src.market import MarketConfig, build_market
from src.oracle import InMemoryPullFeed, InMemoryPushFeed

OWNER = "owner"
KEEPER = "keeper"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"

# 18 decimals движка / 8 decimals push-фида
PUSH_SCALE = 10**10


class MarketHarness:
    """Рынок + управление временем и ценой."""

    def __init__(self, market, clock: ManualClock, push_feed: InMemoryPushFeed, pull_feed: InMemoryPullFeed):
        self.market = market
        self.clock = clock
        self.push_feed = push_feed
        self.pull_feed = pull_feed
        self.price = 0

    # -------------------------------------------------------------------------
    # Environment
    # -------------------------------------------------------------------------

    def set_price(self, price: int) -> None:
        """Свежий push round по цене price (WAD)."""
        self.price = price
        self.push_feed.set_round(price // PUSH_SCALE, self.clock.now())

    def advance(self, seconds: int) -> None:
        """Сдвиг времени с обновлением push round по текущей цене."""
        self.clock.advance(seconds)
        self.set_price(self.price)

    def fund(self, account: str, amount: int) -> None:
        if amount > 0:
            self.market.ledger.mint(account, amount)

    def keeper_fee(self) -> int:
        return self.market.keeper_fee.get_keeper_fee()

    def balance(self, account: str) -> int:
        return self.market.ledger.balance_of(account)

    # -------------------------------------------------------------------------
    # Two-phase helpers
    # -------------------------------------------------------------------------

    def execute(self, account: str, keeper: str = KEEPER) -> None:
        """Ожидание min_executability_age и исполнение по текущей цене."""
        self.advance(self.market.vault.config.min_executability_age)
        self.market.orders.execute_order(keeper, account)

    def deposit(self, account: str, amount: int) -> int:
        """LP депозит; возвращает выпущенные доли."""
        fee = self.keeper_fee()
        self.fund(account, amount + fee)
        before = self.market.shares.balance_of(account)
        self.market.orders.announce_stable_deposit(account, amount, 0, fee)
        self.execute(account)
        return self.market.shares.balance_of(account) - before

    def withdraw(self, account: str, shares: int) -> int:
        """LP вывод; возвращает полученный collateral."""
        fee = self.keeper_fee()
        before = self.balance(account)
        self.market.orders.announce_stable_withdraw(account, shares, 0, fee)
        self.execute(account)
        return self.balance(account) - before

    def open_position(self, account: str, margin: int, size: int, max_fill_price: int | None = None) -> int:
        """Открытие позиции; возвращает token_id."""
        fee = self.keeper_fee()
        trade_fee = self.market.lifecycle.get_trade_fee(size)
        self.fund(account, margin + trade_fee + fee)
        if max_fill_price is None:
            max_fill_price = self.price * 101 // 100
        self.market.orders.announce_leverage_open(account, margin, size, max_fill_price, fee)
        self.execute(account)
        return self.market.registry.tokens_of(account)[-1]

    def close_position(self, account: str, token_id: int, min_fill_price: int = 0) -> int:
        """Закрытие позиции; возвращает выплату владельцу."""
        fee = self.keeper_fee()
        before = self.balance(account)
        self.market.orders.announce_leverage_close(account, token_id, min_fill_price, fee)
        self.execute(account)
        return self.balance(account) - before


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def push_feed() -> InMemoryPushFeed:
    return InMemoryPushFeed(decimals=8)


@pytest.fixture
def pull_feed(clock) -> InMemoryPullFeed:
    return InMemoryPullFeed(clock)


@pytest.fixture
def market_config() -> MarketConfig:
    return MarketConfig()


@pytest.fixture
def harness(market_config, clock, push_feed, pull_feed) -> MarketHarness:
    """Рынок с ценой 1000 и пустым пулом."""
    market = build_market(market_config, OWNER, push_feed, pull_feed, clock=clock)
    h = MarketHarness(market, clock, push_feed, pull_feed)
    h.set_price(to_wad(1000))
    return h


@pytest.fixture
def market(harness):
    return harness.market


@pytest.fixture
def flat_harness(harness) -> MarketHarness:
    """Рынок без funding (max_funding_velocity = 0): точные значения в сценариях."""
    harness.market.vault.set_max_funding_velocity(OWNER, 0)
    return harness


def vault_escrow(market, accounts) -> int:
    """Collateral, удерживаемый под неисполненными delayed ордерами аккаунтов."""
    total = 0
    for account in accounts:
        order = market.orders.get_announced_order(account)
        if order is None:
            continue
        payload = order.payload
        if order.order_type == OrderType.STABLE_DEPOSIT:
            total += payload.deposit_amount + order.keeper_fee
        elif order.order_type == OrderType.LEVERAGE_OPEN:
            total += payload.margin + payload.trade_fee + order.keeper_fee
        elif order.order_type == OrderType.LEVERAGE_ADJUST and payload.margin_adjustment > 0:
            total += payload.margin_adjustment + payload.total_fee
    return total


def assert_conserved(market, accounts=()) -> None:
    """Баланс vault == пул + глобальная маржа + escrow."""
    expected = (
        market.vault.state.stable_collateral_total
        + market.vault.global_positions.margin_deposited_total
        + vault_escrow(market, accounts)
    )
    assert market.ledger.balance_of(market.vault.address) == expected

"""
Market factory — composition root

Создаёт все компоненты рынка, выдаёт каждому модулю собственную
capability и передаёт зависимости явно через конструкторы. Все
компоненты с состоянием регистрируются в одном Journal.
"""

from dataclasses import dataclass, field

from src.core.clock import Clock, SystemClock
from src.core.transaction import Journal, Transactional
from src.liquidation.engine import LiquidationEngine
from src.market.config import MarketConfig
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.oracle.feeds import PullPriceFeed, PushPriceFeed
from src.orders.coordinator import OrderCoordinator
from src.orders.keeper_fee import KeeperFeeOracle, KeeperFeeQuote
from src.orders.limit_orders import LimitOrderBook
from src.positions.lifecycle import PositionLifecycle
from src.positions.registry import PositionRegistry
from src.stable.pool import StablePool
from src.stable.shares import PoolShares
from src.vault.ledger import CollateralLedger
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)


@dataclass
class Market:
    """Связанный набор компонентов одного рынка."""

    journal: Journal
    clock: Clock
    ledger: CollateralLedger
    vault: Vault
    oracle: OracleAdapter
    registry: PositionRegistry
    shares: PoolShares
    liquidation: LiquidationEngine
    lifecycle: PositionLifecycle
    pool: StablePool
    keeper_fee: KeeperFeeQuote
    orders: OrderCoordinator
    limit_orders: LimitOrderBook
    capabilities: dict[ModuleKey, ModuleCapability] = field(default_factory=dict)


def build_market(
    config: MarketConfig,
    owner: str,
    push_feed: PushPriceFeed,
    pull_feed: PullPriceFeed,
    clock: Clock | None = None,
    keeper_fee: KeeperFeeQuote | None = None,
) -> Market:
    """
    Сборка рынка.

    Args:
        config: Конфигурация компонентов
        owner: Аккаунт владельца (owner-only setters, авторизация модулей)
        push_feed: Медленный авторитетный фид
        pull_feed: Быстрый pull-фид
        clock: Источник времени (по умолчанию SystemClock)
        keeper_fee: Котировка keeper fee (по умолчанию KeeperFeeOracle)
    """
    clock = clock or SystemClock()
    journal = Journal()
    ledger = CollateralLedger()
    vault = Vault(config.vault, ledger, clock, journal, owner)
    journal.register(ledger)
    journal.register(vault)
    if isinstance(pull_feed, Transactional):
        journal.register(pull_feed)

    capabilities = {
        key: vault.authorize_module(owner, key)
        for key in (
            ModuleKey.STABLE,
            ModuleKey.LEVERAGE,
            ModuleKey.DELAYED_ORDER,
            ModuleKey.LIMIT_ORDER,
            ModuleKey.LIQUIDATION,
        )
    }

    oracle = OracleAdapter(config.oracle, push_feed, pull_feed, clock, journal, owner)
    if keeper_fee is None:
        keeper_fee = KeeperFeeOracle(config.keeper_fee, oracle, journal, owner)

    registry = PositionRegistry(vault, journal)
    shares = PoolShares(vault, journal)
    liquidation = LiquidationEngine(
        config.liquidation,
        capabilities[ModuleKey.LIQUIDATION],
        vault,
        registry,
        oracle,
        journal,
    )
    lifecycle = PositionLifecycle(
        config.leverage,
        capabilities[ModuleKey.LEVERAGE],
        vault,
        registry,
        liquidation,
        oracle,
        journal,
    )
    pool = StablePool(
        config.stable,
        capabilities[ModuleKey.STABLE],
        vault,
        shares,
        lifecycle,
        oracle,
        journal,
    )
    orders = OrderCoordinator(
        capabilities[ModuleKey.DELAYED_ORDER],
        vault,
        registry,
        lifecycle,
        pool,
        liquidation,
        oracle,
        keeper_fee,
        clock,
        journal,
    )
    limit_orders = LimitOrderBook(
        capabilities[ModuleKey.LIMIT_ORDER],
        vault,
        registry,
        lifecycle,
        oracle,
        keeper_fee,
        clock,
        journal,
    )
    lifecycle.attach_limit_orders(limit_orders)
    liquidation.attach_limit_orders(limit_orders)

    for participant in (oracle, keeper_fee, registry, shares, liquidation, lifecycle, pool, orders, limit_orders):
        if isinstance(participant, Transactional):
            journal.register(participant)

    logger.info("market_built", owner=owner, vault=vault.address)
    return Market(
        journal=journal,
        clock=clock,
        ledger=ledger,
        vault=vault,
        oracle=oracle,
        registry=registry,
        shares=shares,
        liquidation=liquidation,
        lifecycle=lifecycle,
        pool=pool,
        keeper_fee=keeper_fee,
        orders=orders,
        limit_orders=limit_orders,
        capabilities=capabilities,
    )

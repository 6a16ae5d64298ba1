"""
Keeper fee — вознаграждение keeper за исполнение ордера

    fee_usd = clamp(cost + max(profit_margin_usd, cost * profit_margin_percentage),
                    fee_lower_bound, fee_upper_bound)
    fee     = fee_usd / price                       (collateral)

cost — оценка стоимости исполнения в USD. Модель газа вне движка:
её значение выставляет owner (set_execution_cost).

Котировка — нижняя граница keeper fee при announce delayed ордера и
точная плата при исполнении limit ордера.
"""

from dataclasses import dataclass, replace
from typing import Protocol

from src.core.errors import AuthorizationFailure, ErrorCode, ValidationFailure
from src.core.math.fixed_point import WAD, clamp, mul_div, mul_wad, to_wad
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter

logger = get_logger(__name__)


class KeeperFeeQuote(Protocol):
    def get_keeper_fee(self, price: int | None = None) -> int: ...


@dataclass(frozen=True)
class KeeperFeeConfig:
    """Параметры keeper fee (все величины USD в WAD)."""

    profit_margin_usd: int = to_wad(1)
    profit_margin_percentage: int = to_wad("0.3")
    fee_lower_bound: int = to_wad(2)
    fee_upper_bound: int = to_wad(30)
    execution_cost_usd: int = 0

    def __post_init__(self) -> None:
        if self.profit_margin_usd < 0 or self.profit_margin_percentage < 0:
            raise ValueError("profit margins must be non-negative")
        if self.execution_cost_usd < 0:
            raise ValueError(f"execution_cost_usd must be >= 0, got {self.execution_cost_usd}")
        if self.fee_lower_bound <= 0 or self.fee_upper_bound < self.fee_lower_bound:
            raise ValueError(
                f"invalid keeper fee bounds: [{self.fee_lower_bound}, {self.fee_upper_bound}]"
            )


class KeeperFeeOracle:
    """Котировка keeper fee в collateral по цене оракула."""

    def __init__(self, config: KeeperFeeConfig, oracle: OracleAdapter, journal: Journal, owner: str):
        self.config = config
        self._oracle = oracle
        self._journal = journal
        self.owner = owner

    def get_keeper_fee_usd(self) -> int:
        c = self.config
        cost = c.execution_cost_usd
        profit = max(c.profit_margin_usd, mul_wad(cost, c.profit_margin_percentage))
        return clamp(cost + profit, c.fee_lower_bound, c.fee_upper_bound)

    def get_keeper_fee(self, price: int | None = None) -> int:
        if price is None:
            price, _ = self._oracle.get_price()
        return mul_div(self.get_keeper_fee_usd(), WAD, price)

    def _set_config(self, caller: str, **changes) -> None:
        if caller != self.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)
        try:
            self.config = replace(self.config, **changes)
        except ValueError as exc:
            raise ValidationFailure(ErrorCode.INVALID_CONFIG, str(exc)) from exc
        logger.info("keeper_fee_config_updated", **changes)

    @entry_point
    def set_execution_cost(self, caller: str, execution_cost_usd: int) -> None:
        self._set_config(caller, execution_cost_usd=execution_cost_usd)

    @entry_point
    def set_profit_margin(self, caller: str, profit_margin_usd: int, profit_margin_percentage: int) -> None:
        self._set_config(
            caller,
            profit_margin_usd=profit_margin_usd,
            profit_margin_percentage=profit_margin_percentage,
        )

    @entry_point
    def set_keeper_fee_bounds(self, caller: str, fee_lower_bound: int, fee_upper_bound: int) -> None:
        self._set_config(caller, fee_lower_bound=fee_lower_bound, fee_upper_bound=fee_upper_bound)

    def snapshot(self) -> KeeperFeeConfig:
        return self.config

    def restore(self, state: KeeperFeeConfig) -> None:
        self.config = state


class FixedKeeperFee:
    """Постоянная котировка (тесты, симуляции)."""

    def __init__(self, amount: int):
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        self.amount = amount

    def get_keeper_fee(self, price: int | None = None) -> int:
        return self.amount

"""
StablePool — LP сторона рынка

Пул — шорт-контрагент всех лонгов. Стоимость доли:

    total_after_settlement = max(C - (aggregate PnL + unrecorded funding лонгов), 0)
    per_share = total_after_settlement * 1e18 / total_supply   (1e18 при пустом supply)

Deposit выпускает deposit * 1e18 / per_share долей, withdraw сжигает доли
и отдаёт shares * per_share / 1e18 за вычетом withdraw fee (fee остаётся
в пуле).

MIN_LIQUIDITY: ненулевой supply не может опуститься ниже порога, что
защищает первую долю от манипуляции стоимостью.
"""

from dataclasses import dataclass, replace

from src.core.domain.order import AnnouncedStableDeposit, AnnouncedStableWithdraw
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math.fixed_point import WAD, mul_div, mul_wad, to_wad
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.adapter import OracleAdapter
from src.positions.lifecycle import PositionLifecycle
from src.stable.shares import PoolShares
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)

MIN_LIQUIDITY = 10_000
MAX_WITHDRAW_FEE = to_wad("0.01")


@dataclass(frozen=True)
class StableConfig:
    """Параметры LP модуля."""

    withdraw_fee: int = to_wad("0.005")

    def __post_init__(self) -> None:
        if self.withdraw_fee < 0 or self.withdraw_fee > MAX_WITHDRAW_FEE:
            raise ValueError(f"withdraw_fee out of [0, 0.01e18]: {self.withdraw_fee}")


class StablePool:
    """Deposit / withdraw LP и оценка долей."""

    def __init__(
        self,
        config: StableConfig,
        capability: ModuleCapability,
        vault: Vault,
        shares: PoolShares,
        lifecycle: PositionLifecycle,
        oracle: OracleAdapter,
        journal: Journal,
    ):
        self.config = config
        self._capability = capability
        self._vault = vault
        self.shares = shares
        self._lifecycle = lifecycle
        self._oracle = oracle
        self._journal = journal

    # -------------------------------------------------------------------------
    # Valuation
    # -------------------------------------------------------------------------

    def _price(self, price: int | None) -> int:
        if price is None:
            price, _ = self._oracle.get_price()
        return price

    def stable_collateral_total_after_settlement(self, price: int | None = None) -> int:
        """Collateral пула после учёта PnL и неучтённого funding лонгов."""
        price = self._price(price)
        total = self._vault.state.stable_collateral_total - (
            self._lifecycle.funding_adjusted_long_pnl_total(price)
        )
        return max(total, 0)

    def stable_collateral_per_share(self, price: int | None = None) -> int:
        supply = self.shares.total_supply
        if supply == 0:
            return WAD
        return mul_div(self.stable_collateral_total_after_settlement(price), WAD, supply)

    def _require_per_share(self, price: int) -> int:
        per_share = self.stable_collateral_per_share(price)
        if per_share == 0:
            raise ValidationFailure(ErrorCode.ZERO_VALUE, "stable collateral per share")
        return per_share

    def stable_deposit_quote(self, deposit_amount: int, price: int | None = None) -> int:
        """Доли к выпуску за deposit_amount."""
        per_share = self._require_per_share(self._price(price))
        return mul_div(deposit_amount, WAD, per_share)

    def stable_withdraw_quote(self, withdraw_amount: int, price: int | None = None) -> tuple[int, int]:
        """(amount_out до комиссий, withdraw_fee) за withdraw_amount долей."""
        amount_out = mul_div(withdraw_amount, self.stable_collateral_per_share(price), WAD)
        return amount_out, mul_wad(self.config.withdraw_fee, amount_out)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_deposit(
        self,
        caller: ModuleCapability,
        account: str,
        payload: AnnouncedStableDeposit,
        price: int,
    ) -> int:
        """
        Выпуск долей за депозит (collateral уже в Vault).

        Returns:
            Количество выпущенных долей
        """
        self._vault.require_module(caller)
        self._vault.require_not_paused(ModuleKey.STABLE)
        minted = mul_div(payload.deposit_amount, WAD, self._require_per_share(price))
        if minted < payload.min_amount_out:
            raise EconomicGuardrail(
                ErrorCode.HIGH_SLIPPAGE, amount_out=minted, min_amount_out=payload.min_amount_out
            )

        self.shares.mint(self._capability, account, minted)
        self._vault.update_stable_collateral_total(self._capability, payload.deposit_amount)

        if self.shares.total_supply < MIN_LIQUIDITY:
            raise ValidationFailure(
                ErrorCode.AMOUNT_TOO_SMALL,
                "total supply below minimum liquidity",
                total_supply=self.shares.total_supply,
            )

        logger.info(
            "stable_deposit_executed",
            account=account,
            deposit_amount=payload.deposit_amount,
            shares_minted=minted,
        )
        return minted

    def execute_withdraw(
        self,
        caller: ModuleCapability,
        account: str,
        payload: AnnouncedStableWithdraw,
        price: int,
    ) -> tuple[int, int]:
        """
        Сжигание заблокированных долей.

        Returns:
            (amount_out, withdraw_fee); fee ещё не зачислена в пул
        """
        self._vault.require_module(caller)
        self._vault.require_not_paused(ModuleKey.STABLE)
        per_share = self.stable_collateral_per_share(price)
        amount_out = mul_div(payload.withdraw_amount, per_share, WAD)

        self.shares.unlock(self._capability, account, payload.withdraw_amount)
        self.shares.burn(self._capability, account, payload.withdraw_amount)
        self._vault.update_stable_collateral_total(self._capability, -amount_out)

        withdraw_fee = mul_wad(self.config.withdraw_fee, amount_out)

        supply = self.shares.total_supply
        if 0 < supply < MIN_LIQUIDITY:
            raise ValidationFailure(
                ErrorCode.AMOUNT_TOO_SMALL,
                "total supply below minimum liquidity",
                total_supply=supply,
            )

        logger.info(
            "stable_withdraw_executed",
            account=account,
            shares_burned=payload.withdraw_amount,
            amount_out=amount_out,
            withdraw_fee=withdraw_fee,
        )
        return amount_out, withdraw_fee

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    @entry_point
    def set_stable_withdraw_fee(self, caller: str, withdraw_fee: int) -> None:
        if caller != self._vault.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)
        try:
            self.config = replace(self.config, withdraw_fee=withdraw_fee)
        except ValueError as exc:
            raise ValidationFailure(ErrorCode.INVALID_FEE, str(exc)) from exc
        logger.info("stable_config_updated", withdraw_fee=withdraw_fee)

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> StableConfig:
        return self.config

    def restore(self, state: StableConfig) -> None:
        self.config = state

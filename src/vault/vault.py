"""
Vault — глобальный леджер рынка

Владеет:
- VaultState (пул LP, funding)
- GlobalPositions (агрегат лонгов)
- записями позиций по token_id
- таблицей capability модулей и флагами паузы
- escrow: только Vault переводит collateral со своего счёта

Funding settlement (settle_funding_fees):
    (change, u) = unrecorded funding с последнего пересчёта
    cumulative += u; last_rate += change; timestamp = now
    fees_to_longs = -(S * u)
    M = max(M + fees_to_longs, 0); C = max(C - fees_to_longs, 0)

Aggregate PnL (update_global_position_data):
    A(p) = (S * p - N) / p,  N = Σ size * entry_price
    pnl = A(price) - A(last_price)
    M += margin_delta + pnl; C -= pnl; last_price = price; N += entry_value_delta

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. stable_collateral_total >= 0 (floor 0)
2. margin_deposited_total >= 0 (иначе InsufficientGlobalMargin)
3. Повторный settle в тот же момент — no-op (elapsed = 0)
4. Мутирующие методы доступны только держателям действующей capability
"""

from dataclasses import dataclass, replace

from src.core.clock import Clock
from src.core.domain.position import GlobalPositions, Position
from src.core.domain.vault_state import VaultState
from src.core.errors import (
    AuthorizationFailure,
    EconomicGuardrail,
    ErrorCode,
    ValidationFailure,
)
from src.core.math.fixed_point import WAD, mul_div, to_wad
from src.core.math.funding import (
    UnrecordedFunding,
    accrued_funding_total_by_longs,
    current_funding_rate,
    current_skew,
    get_unrecorded_funding,
    next_funding_entry,
    proportional_skew,
)
from src.core.math.perp_math import profit_loss_total
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.vault.ledger import CollateralLedger
from src.vault.modules import ModuleCapability, ModuleKey

logger = get_logger(__name__)

# skew_fraction_max, при котором проверка skew отключена
SKEW_CHECK_DISABLED = 2**256 - 1


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class VaultConfig:
    """Параметры рынка, которыми управляет owner."""

    max_funding_velocity: int = to_wad("0.003")  # WAD в день
    max_velocity_skew: int = to_wad("0.1")
    stable_collateral_cap: int = to_wad(500)
    skew_fraction_max: int = to_wad("1.2")
    min_executability_age: int = 5  # seconds
    max_executability_age: int = 60  # seconds

    def __post_init__(self) -> None:
        if self.max_funding_velocity < 0:
            raise ValueError(f"max_funding_velocity must be >= 0, got {self.max_funding_velocity}")
        if self.max_velocity_skew <= 0 or self.max_velocity_skew > WAD:
            raise ValueError(f"max_velocity_skew out of (0, 1e18]: {self.max_velocity_skew}")
        if self.skew_fraction_max < WAD:
            raise ValueError(f"skew_fraction_max must be >= 1e18, got {self.skew_fraction_max}")
        if self.min_executability_age <= 0 or self.max_executability_age <= 0:
            raise ValueError("executability ages must be positive")


# =============================================================================
# VAULT
# =============================================================================


class Vault:
    """Глобальный леджер: пул, агрегаты, позиции, escrow, авторизация."""

    def __init__(
        self,
        config: VaultConfig,
        ledger: CollateralLedger,
        clock: Clock,
        journal: Journal,
        owner: str,
        address: str = "vault",
    ):
        if not owner:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "owner")
        self.config = config
        self.ledger = ledger
        self.owner = owner
        self.address = address
        self._clock = clock
        self._journal = journal

        self.state = VaultState(last_recomputed_funding_timestamp=clock.now())
        self.global_positions = GlobalPositions()
        self._positions: dict[int, Position] = {}
        self._capabilities: dict[ModuleKey, ModuleCapability] = {}
        self._paused: set[ModuleKey] = set()

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)

    def require_module(self, capability: ModuleCapability) -> None:
        if not isinstance(capability, ModuleCapability) or (
            self._capabilities.get(capability.key) is not capability
        ):
            raise AuthorizationFailure(
                ErrorCode.ONLY_AUTHORIZED_MODULE, capability=repr(capability)
            )

    @entry_point
    def authorize_module(self, caller: str, key: ModuleKey) -> ModuleCapability:
        """
        Выдача capability модулю.

        Повторная авторизация отзывает предыдущую capability этого key.
        """
        self._only_owner(caller)
        capability = ModuleCapability(key=key)
        self._capabilities[key] = capability
        logger.info("module_authorized", module=key.value)
        return capability

    @entry_point
    def revoke_module(self, caller: str, key: ModuleKey) -> None:
        self._only_owner(caller)
        self._capabilities.pop(key, None)
        logger.info("module_revoked", module=key.value)

    @entry_point
    def pause_module(self, caller: str, key: ModuleKey) -> None:
        self._only_owner(caller)
        self._paused.add(key)
        logger.info("module_paused", module=key.value)

    @entry_point
    def unpause_module(self, caller: str, key: ModuleKey) -> None:
        self._only_owner(caller)
        self._paused.discard(key)
        logger.info("module_unpaused", module=key.value)

    def is_authorized(self, capability: ModuleCapability) -> bool:
        return self._capabilities.get(capability.key) is capability

    def is_paused(self, key: ModuleKey) -> bool:
        return key in self._paused

    def require_not_paused(self, key: ModuleKey) -> None:
        """
        Raises:
            AuthorizationFailure: ModulePaused
        """
        if key in self._paused:
            raise AuthorizationFailure(ErrorCode.MODULE_PAUSED, module=key.value)

    # -------------------------------------------------------------------------
    # Funding
    # -------------------------------------------------------------------------

    def unrecorded_funding(self) -> UnrecordedFunding:
        """Funding, накопленный с последнего пересчёта (на текущий момент)."""
        gp = self.global_positions
        p_skew = proportional_skew(
            gp.size_opened_total - self.state.stable_collateral_total,
            self.state.stable_collateral_total,
        )
        return get_unrecorded_funding(
            p_skew,
            self.state.last_recomputed_funding_rate,
            self.state.last_recomputed_funding_timestamp,
            self._clock.now(),
            self.config.max_funding_velocity,
            self.config.max_velocity_skew,
        )

    @entry_point
    def settle_funding_fees(self) -> int:
        """
        Публичный settlement funding (может вызвать кто угодно).

        Returns:
            Funding, начисленный лонгам (отрицательный — уплачен лонгами)
        """
        return self._settle_funding_fees()

    def accrue_funding(self, capability: ModuleCapability) -> int:
        """Settlement funding внутри операции модуля."""
        self.require_module(capability)
        return self._settle_funding_fees()

    def _settle_funding_fees(self) -> int:
        change, unrecorded = self.unrecorded_funding()
        gp = self.global_positions
        fees = accrued_funding_total_by_longs(gp.size_opened_total, unrecorded)

        self.state = self.state.model_copy(
            update={
                "cumulative_funding_rate": next_funding_entry(
                    unrecorded, self.state.cumulative_funding_rate
                ),
                "last_recomputed_funding_rate": current_funding_rate(
                    self.state.last_recomputed_funding_rate, change
                ),
                "last_recomputed_funding_timestamp": self._clock.now(),
            }
        )

        self.global_positions = gp.model_copy(
            update={"margin_deposited_total": max(gp.margin_deposited_total + fees, 0)}
        )
        self._set_stable_collateral_total(self.state.stable_collateral_total - fees)

        logger.debug(
            "funding_settled",
            funding_rate=self.state.last_recomputed_funding_rate,
            cumulative_funding_rate=self.state.cumulative_funding_rate,
            fees_to_longs=fees,
        )
        return fees

    def get_current_funding_rate(self) -> int:
        change, _ = self.unrecorded_funding()
        return current_funding_rate(self.state.last_recomputed_funding_rate, change)

    def next_funding_entry(self) -> int:
        """cumulative_funding_rate, если бы settlement произошёл сейчас."""
        _, unrecorded = self.unrecorded_funding()
        return next_funding_entry(unrecorded, self.state.cumulative_funding_rate)

    def get_current_skew(self) -> int:
        """Skew рынка с учётом неучтённого funding (WAD, знаковый)."""
        _, unrecorded = self.unrecorded_funding()
        return current_skew(
            self.global_positions.size_opened_total,
            self.state.stable_collateral_total,
            unrecorded,
        )

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def _set_stable_collateral_total(self, value: int) -> None:
        self.state = self.state.model_copy(update={"stable_collateral_total": max(value, 0)})

    def update_stable_collateral_total(self, capability: ModuleCapability, delta: int) -> None:
        """C += delta (floor 0)."""
        self.require_module(capability)
        self._set_stable_collateral_total(self.state.stable_collateral_total + delta)

    def update_global_position_data(
        self,
        capability: ModuleCapability,
        price: int,
        margin_delta: int,
        size_delta: int,
        entry_value_delta: int | None = None,
    ) -> None:
        """
        Реализация агрегатного PnL и применение дельт.

        PnL агрегата с last_price переносится из пула в глобальную маржу,
        last_price сбрасывается на price. Реализуется изменение точного
        агрегатного PnL (по entry_value_total), поэтому сумма реализаций
        по любой цепочке цен совпадает с PnL открытых позиций.

        Args:
            entry_value_delta: Изменение Σ size * entry_price; по умолчанию
                size_delta * price (размер входит по цене исполнения)

        Raises:
            EconomicGuardrail: InsufficientGlobalMargin если M стала бы < 0
        """
        self.require_module(capability)
        if price <= 0:
            raise ValidationFailure(ErrorCode.VALUE_NOT_POSITIVE, "price", price=price)
        if entry_value_delta is None:
            entry_value_delta = size_delta * price

        gp = self.global_positions
        pnl_total = profit_loss_total(gp, price)

        new_margin = gp.margin_deposited_total + margin_delta + pnl_total
        if new_margin < 0:
            raise EconomicGuardrail(
                ErrorCode.INSUFFICIENT_GLOBAL_MARGIN,
                margin_deposited_total=gp.margin_deposited_total,
                margin_delta=margin_delta,
                profit_loss_total=pnl_total,
            )
        new_size = gp.size_opened_total + size_delta
        new_entry_value = gp.entry_value_total + entry_value_delta
        if new_size < 0 or new_entry_value < 0:
            raise ValidationFailure(
                ErrorCode.VALUE_NOT_POSITIVE,
                "size_opened_total",
                size_opened_total=new_size,
                entry_value_total=new_entry_value,
            )

        self.global_positions = GlobalPositions(
            margin_deposited_total=new_margin,
            size_opened_total=new_size,
            entry_value_total=new_entry_value,
            last_price=price,
        )
        self._set_stable_collateral_total(self.state.stable_collateral_total - pnl_total)

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def get_position(self, token_id: int) -> Position | None:
        return self._positions.get(token_id)

    def set_position(self, capability: ModuleCapability, token_id: int, position: Position) -> None:
        self.require_module(capability)
        self._positions[token_id] = position

    def delete_position(self, capability: ModuleCapability, token_id: int) -> None:
        self.require_module(capability)
        if self._positions.pop(token_id, None) is None:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id)

    @property
    def position_ids(self) -> list[int]:
        return sorted(self._positions)

    # -------------------------------------------------------------------------
    # Escrow
    # -------------------------------------------------------------------------

    def collect_collateral(self, capability: ModuleCapability, sender: str, amount: int) -> None:
        """Перевод collateral пользователя на счёт Vault (escrow)."""
        self.require_module(capability)
        self.ledger.transfer(sender, self.address, amount)

    def send_collateral(self, capability: ModuleCapability, recipient: str, amount: int) -> None:
        """Исходящий перевод со счёта Vault."""
        self.require_module(capability)
        self.ledger.transfer(self.address, recipient, amount)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def check_skew_max(self, additional_skew: int) -> None:
        """
        Ограничение доли лонгов: (S + additional) / C <= skew_fraction_max.

        Raises:
            ValidationFailure: ZeroValue при пустом пуле
            EconomicGuardrail: MaxSkewReached
        """
        if self.config.skew_fraction_max >= SKEW_CHECK_DISABLED:
            return

        pool_total = self.state.stable_collateral_total
        if pool_total == 0:
            raise ValidationFailure(ErrorCode.ZERO_VALUE, "stable_collateral_total")

        long_skew_fraction = mul_div(
            self.global_positions.size_opened_total + additional_skew, WAD, pool_total
        )
        if long_skew_fraction > self.config.skew_fraction_max:
            raise EconomicGuardrail(
                ErrorCode.MAX_SKEW_REACHED,
                long_skew_fraction=long_skew_fraction,
                skew_fraction_max=self.config.skew_fraction_max,
            )

    def check_collateral_cap(self, deposit_amount: int) -> None:
        """
        Raises:
            EconomicGuardrail: DepositCapReached
        """
        total = self.state.stable_collateral_total + deposit_amount
        if total > self.config.stable_collateral_cap:
            raise EconomicGuardrail(
                ErrorCode.DEPOSIT_CAP_REACHED,
                collateral_cap=self.config.stable_collateral_cap,
                total=total,
            )

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    def _set_config(self, **changes) -> None:
        try:
            self.config = replace(self.config, **changes)
        except ValueError as exc:
            raise ValidationFailure(ErrorCode.INVALID_CONFIG, str(exc)) from exc
        logger.info("vault_config_updated", **changes)

    @entry_point
    def set_max_funding_velocity(self, caller: str, max_funding_velocity: int) -> None:
        self._only_owner(caller)
        self._settle_funding_fees()
        self._set_config(max_funding_velocity=max_funding_velocity)

    @entry_point
    def set_max_velocity_skew(self, caller: str, max_velocity_skew: int) -> None:
        self._only_owner(caller)
        self._settle_funding_fees()
        self._set_config(max_velocity_skew=max_velocity_skew)

    @entry_point
    def set_stable_collateral_cap(self, caller: str, stable_collateral_cap: int) -> None:
        self._only_owner(caller)
        self._set_config(stable_collateral_cap=stable_collateral_cap)

    @entry_point
    def set_skew_fraction_max(self, caller: str, skew_fraction_max: int) -> None:
        self._only_owner(caller)
        self._set_config(skew_fraction_max=skew_fraction_max)

    @entry_point
    def set_executability_age(
        self, caller: str, min_executability_age: int, max_executability_age: int
    ) -> None:
        self._only_owner(caller)
        self._set_config(
            min_executability_age=min_executability_age,
            max_executability_age=max_executability_age,
        )

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> tuple:
        return (
            self.config,
            self.state,
            self.global_positions,
            dict(self._positions),
            dict(self._capabilities),
            set(self._paused),
        )

    def restore(self, state: tuple) -> None:
        (
            self.config,
            self.state,
            self.global_positions,
            positions,
            capabilities,
            paused,
        ) = state
        self._positions = dict(positions)
        self._capabilities = dict(capabilities)
        self._paused = set(paused)

"""
MarketConfig — загрузка конфигурации рынка

Вложенный JSON-подобный dict (секции vault / leverage / liquidation /
stable / oracle / keeper_fee) валидируется по схеме market_config,
после чего строятся frozen dataclass конфиги компонентов. Отсутствующие
секции и поля получают значения по умолчанию.

Денежные значения допускаются как int или строка из цифр (18 decimals).
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict

from jsonschema import ValidationError

from src.core.contracts import MarketConfigValidator
from src.core.errors import ErrorCode, ValidationFailure
from src.liquidation.engine import LiquidationConfig
from src.oracle.adapter import OracleConfig
from src.orders.keeper_fee import KeeperFeeConfig
from src.positions.lifecycle import LeverageConfig
from src.stable.pool import StableConfig
from src.vault.vault import VaultConfig


@dataclass(frozen=True)
class MarketConfig:
    """Конфигурация всех компонентов рынка."""

    vault: VaultConfig = field(default_factory=VaultConfig)
    leverage: LeverageConfig = field(default_factory=LeverageConfig)
    liquidation: LiquidationConfig = field(default_factory=LiquidationConfig)
    stable: StableConfig = field(default_factory=StableConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    keeper_fee: KeeperFeeConfig = field(default_factory=KeeperFeeConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketConfig":
        """
        Построение конфигурации из dict.

        Raises:
            ValidationFailure: InvalidConfig (нарушение схемы или ограничений конфига)
        """
        try:
            MarketConfigValidator().validate(data)
        except ValidationError as e:
            path = ".".join(str(p) for p in e.absolute_path) or "<root>"
            raise ValidationFailure(ErrorCode.INVALID_CONFIG, f"{path}: {e.message}") from e

        sections = {}
        for f in fields(cls):
            raw = data.get(f.name, {})
            try:
                sections[f.name] = f.default_factory(**{k: int(v) for k, v in raw.items()})
            except ValueError as e:
                raise ValidationFailure(ErrorCode.INVALID_CONFIG, f"{f.name}: {e}") from e
        return cls(**sections)

"""
Tests for market config contract

Проверяет:
- Валидность самой схемы market_config
- Значения по умолчанию при пустом dict
- Денежные значения как int и как строка из цифр
- Детекцию неизвестных ключей и нарушений типов
- Ограничения dataclass конфигов → InvalidConfig
- Сборку рынка из загруженной конфигурации
"""

import json

import pytest
from jsonschema import Draft202012Validator, ValidationError

from src.core.clock import ManualClock
from src.core.contracts import MarketConfigValidator, SchemaLoader, validate_market_config
from src.core.errors import ErrorCode, ValidationFailure
from src.core.math.fixed_point import to_wad
from src.market import MarketConfig, build_market
from src.oracle import InMemoryPullFeed, InMemoryPushFeed
from src.vault import VaultConfig


@pytest.fixture
def valid_config() -> dict:
    """Валидная конфигурация с частью полей."""
    return {
        "vault": {
            "max_funding_velocity": "3000000000000000",
            "stable_collateral_cap": 1000 * 10**18,
            "min_executability_age": 10,
            "max_executability_age": 120,
        },
        "leverage": {"trading_fee": "2000000000000000"},
        "oracle": {"push_decimals": 8, "max_diff_percent": "10000000000000000"},
        "keeper_fee": {"execution_cost_usd": 3 * 10**18},
    }


# =============================================================================
# SCHEMA
# =============================================================================


class TestSchema:
    """Сама JSON Schema"""

    def test_schema_is_valid(self) -> None:
        """Схема проходит мета-валидацию Draft 2020-12"""
        schema = SchemaLoader().load_schema("market_config")
        Draft202012Validator.check_schema(schema)

    def test_schema_cached(self) -> None:
        """Повторная загрузка возвращает тот же объект"""
        loader = SchemaLoader()
        assert loader.load_schema("market_config") is loader.load_schema("market_config")

    def test_missing_schema(self) -> None:
        """Неизвестная схема → FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            SchemaLoader().load_schema("does_not_exist")

    def test_invalid_schema_file(self, tmp_path) -> None:
        """Файл, не являющийся JSON Schema → ValueError"""
        (tmp_path / "broken.json").write_text(json.dumps({"type": 12}), encoding="utf-8")
        with pytest.raises(ValueError):
            SchemaLoader(tmp_path).load_schema("broken")


class TestValidator:
    """MarketConfigValidator"""

    def test_valid_payload(self, valid_config) -> None:
        """Валидный dict проходит"""
        validate_market_config(valid_config)
        assert MarketConfigValidator().is_valid(valid_config)

    def test_unknown_section(self) -> None:
        """Неизвестная секция → ValidationError"""
        with pytest.raises(ValidationError):
            validate_market_config({"perps": {}})

    def test_unknown_field(self) -> None:
        """Неизвестное поле секции → ValidationError"""
        assert not MarketConfigValidator().is_valid({"vault": {"max_leverage": 10}})

    def test_negative_value(self) -> None:
        """Отрицательная сумма → ValidationError"""
        assert not MarketConfigValidator().is_valid({"stable": {"withdraw_fee": -1}})

    def test_non_digit_string(self) -> None:
        """Строка с точкой не является uint"""
        assert not MarketConfigValidator().is_valid({"stable": {"withdraw_fee": "0.005"}})

    def test_zero_seconds(self) -> None:
        """Возраст ордера 0 секунд → ValidationError"""
        errors = list(MarketConfigValidator().iter_errors({"vault": {"min_executability_age": 0}}))
        assert errors

    def test_push_decimals_range(self) -> None:
        """push_decimals > 18 → ValidationError"""
        assert not MarketConfigValidator().is_valid({"oracle": {"push_decimals": 19}})


# =============================================================================
# LOADING
# =============================================================================


class TestMarketConfigLoading:
    """MarketConfig.from_dict"""

    def test_empty_dict_gives_defaults(self) -> None:
        """Пустой dict → конфиги по умолчанию"""
        assert MarketConfig.from_dict({}) == MarketConfig()

    def test_values_applied(self, valid_config) -> None:
        """Строки и int приводятся к int"""
        config = MarketConfig.from_dict(valid_config)
        assert config.vault.max_funding_velocity == to_wad("0.003")
        assert config.vault.stable_collateral_cap == to_wad(1000)
        assert config.vault.max_executability_age == 120
        assert config.leverage.trading_fee == to_wad("0.002")
        assert config.oracle.max_diff_percent == to_wad("0.01")
        assert config.keeper_fee.execution_cost_usd == to_wad(3)
        assert config.stable == MarketConfig().stable

    def test_schema_violation(self) -> None:
        """Нарушение схемы → InvalidConfig с путём к полю"""
        with pytest.raises(ValidationFailure) as exc_info:
            MarketConfig.from_dict({"vault": {"max_funding_velocity": "fast"}})
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG
        assert "vault.max_funding_velocity" in str(exc_info.value)

    def test_constraint_violation(self) -> None:
        """Схема пройдена, ограничение конфига нарушено → InvalidConfig"""
        with pytest.raises(ValidationFailure) as exc_info:
            MarketConfig.from_dict({"leverage": {"trading_fee": to_wad("0.02")}})
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG
        assert "leverage" in str(exc_info.value)

    def test_vault_config_constraints(self) -> None:
        """skew_fraction_max < 1 → ValueError"""
        with pytest.raises(ValueError):
            VaultConfig(skew_fraction_max=to_wad("0.9"))

    def test_build_market_from_loaded_config(self, valid_config) -> None:
        """Загруженная конфигурация доходит до компонентов"""
        market = build_market(
            MarketConfig.from_dict(valid_config),
            "owner",
            InMemoryPushFeed(decimals=8),
            InMemoryPullFeed(ManualClock()),
            clock=ManualClock(),
        )
        assert market.vault.config.min_executability_age == 10
        assert market.lifecycle.config.trading_fee == to_wad("0.002")
        assert market.registry.total_supply == 0

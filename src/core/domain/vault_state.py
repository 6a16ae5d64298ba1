"""
VaultState — состояние пула и funding

Immutable Pydantic модель; Vault заменяет экземпляр целиком при каждом
изменении. Параметры рынка (velocity, caps, executability) живут в
VaultConfig рядом с Vault.
"""

from pydantic import BaseModel, Field


class VaultState(BaseModel):
    """
    Синглтон состояния пула.

    stable_collateral_total никогда не становится отрицательным (floor 0).
    """

    stable_collateral_total: int = Field(0, ge=0, description="Collateral LP пула (WAD)")
    cumulative_funding_rate: int = Field(0, description="Накопленный funding (WAD)")
    last_recomputed_funding_rate: int = Field(
        0, description="Funding rate на момент последнего пересчёта (WAD в день)"
    )
    last_recomputed_funding_timestamp: int = Field(
        ..., ge=0, description="Время последнего пересчёта (UNIX seconds)"
    )

    model_config = {"frozen": True}

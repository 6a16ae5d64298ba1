"""
Position — модель леверидж-позиции и агрегата всех позиций

Immutable Pydantic модели. Позиция никогда не мутируется: adjust создаёт
новый экземпляр с новым baseline (entry_price, entry_cumulative_funding).

Все величины — int в WAD (10**18).
"""

from pydantic import BaseModel, Field

# =============================================================================
# POSITION MODEL
# =============================================================================


class Position(BaseModel):
    """
    Открытая леверидж-позиция.

    entry_cumulative_funding фиксируется при последнем сбросе baseline
    (open/adjust) и используется только для расчёта funding с этого момента.
    """

    entry_price: int = Field(..., gt=0, description="Цена baseline (WAD)")
    margin_deposited: int = Field(..., ge=0, description="Маржа на момент baseline (WAD)")
    additional_size: int = Field(..., ge=0, description="Размер позиции сверх маржи (WAD)")
    entry_cumulative_funding: int = Field(
        ..., description="cumulativeFundingRate на момент baseline (WAD, знаковый)"
    )

    model_config = {"frozen": True}  # Immutable


class GlobalPositions(BaseModel):
    """
    Агрегат всех открытых позиций.

    last_price — цена снапшота, относительно которой считается
    нереализованный агрегатный PnL. Сбрасывается на каждом событии,
    меняющем агрегаты.

    entry_value_total = Σ additional_size * entry_price без деления на WAD:
    точная сумма, по которой агрегатный PnL не зависит от пути цены.
    """

    margin_deposited_total: int = Field(0, ge=0, description="Сумма маржи лонгов (WAD)")
    size_opened_total: int = Field(0, ge=0, description="Сумма размеров лонгов (WAD)")
    entry_value_total: int = Field(
        0, ge=0, description="Σ size * entry_price открытых позиций (WAD * WAD)"
    )
    last_price: int = Field(0, ge=0, description="Цена последнего снапшота (WAD)")

    model_config = {"frozen": True}


class PositionSummary(BaseModel):
    """Результат settlement позиции при заданной цене."""

    profit_loss: int = Field(..., description="PnL с baseline (WAD, floor)")
    accrued_funding: int = Field(..., description="Funding с baseline (WAD, floor)")
    margin_after_settlement: int = Field(
        ..., description="margin + PnL + funding (WAD, может быть < 0)"
    )

    model_config = {"frozen": True}

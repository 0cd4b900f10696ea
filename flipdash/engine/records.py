"""
TradeRecord -- one completed flip, the unit every query runs over.

Profit is derived from prices, quantity and tax.  A supplied profit is
accepted only when it agrees with the recomputed value to within one GP
per unit; otherwise the record is rejected.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from flipdash.core.utils import as_number

RoiScale = Literal["fraction", "percent"]


def normalize_roi(value: float | None, scale: RoiScale) -> float | None:
    """Convert an ROI given as a fraction (0.12) or a percentage (12) to percent."""
    if value is None:
        return None
    if scale == "fraction":
        return value * 100
    if scale == "percent":
        return value
    raise ValueError(f"Unknown ROI scale '{scale}' (expected 'fraction' or 'percent')")


class TradeRecord(BaseModel):
    item: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    avg_buy_price: float = Field(..., ge=0)
    avg_sell_price: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    profit: float | None = None
    roi: float | None = Field(None, description="Percent")
    opened_at: datetime
    closed_at: datetime
    account: str = "main"

    @model_validator(mode="after")
    def _derive_profit(self) -> "TradeRecord":
        if self.closed_at < self.opened_at:
            raise ValueError("closed_at must not be before opened_at")
        expected = self.revenue - self.spent - self.tax
        if self.profit is None:
            self.profit = expected
        elif abs(self.profit - expected) > self.quantity:
            raise ValueError(
                f"profit {self.profit} does not match prices x quantity - tax ({expected})"
            )
        if self.roi is None:
            self.roi = round(self.profit / self.spent * 100, 4) if self.spent else 0.0
        return self

    @property
    def spent(self) -> float:
        return self.avg_buy_price * self.quantity

    @property
    def revenue(self) -> float:
        return self.avg_sell_price * self.quantity

    @property
    def duration_minutes(self) -> float:
        return (self.closed_at - self.opened_at).total_seconds() / 60

    def to_row(self) -> dict[str, Any]:
        """Flatten into the row shape shared by the executor and the ``flips`` table."""
        minutes = as_number(round(self.duration_minutes, 2))
        return {
            "item": self.item,
            "quantity": self.quantity,
            "buy_price": as_number(self.avg_buy_price),
            "sell_price": as_number(self.avg_sell_price),
            "tax": as_number(self.tax),
            "profit": as_number(self.profit),
            "roi": self.roi,
            "buy_time": self.opened_at.isoformat(),
            "sell_time": self.closed_at.isoformat(),
            "account": self.account,
            "flip_duration_minutes": minutes,
            "duration_minutes": minutes,
            "hours_held": round(self.duration_minutes / 60, 4),
            "date": self.closed_at.date().isoformat(),
            "spent": as_number(self.spent),
            "revenue": as_number(self.revenue),
        }

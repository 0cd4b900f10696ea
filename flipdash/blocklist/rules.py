"""
Blocklist rule models -- the JSON contract shared by the translator, the
evaluator and the HTTP layer.

Wire format (camelCase on the wire, snake_case in Python)::

    {
      "interpretation": "Include F2P items priced between 100k and 10m gp",
      "rules": [
        {"type": "include",
         "conditions": [{"field": "price", "operator": "between", "value": [100000, 10000000]},
                        {"field": "f2p", "operator": "eq", "value": true}],
         "combineWith": "AND"}
      ],
      "defaultAction": "exclude"
    }
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

RuleField = Literal["price", "volume", "f2p", "members"]
RuleOperator = Literal["gt", "lt", "gte", "lte", "eq", "between"]
RuleAction = Literal["include", "exclude"]

RULE_FIELDS: tuple[str, ...] = ("price", "volume", "f2p", "members")
BOOLEAN_FIELDS = frozenset({"f2p", "members"})


class RuleCondition(BaseModel):
    field: RuleField
    operator: RuleOperator
    value: Any

    @model_validator(mode="after")
    def _check_value(self) -> "RuleCondition":
        if self.operator == "between":
            if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                raise ValueError("'between' needs a [min, max] pair")
            self.value = list(self.value)
        elif self.field in BOOLEAN_FIELDS and not isinstance(self.value, bool):
            raise ValueError(f"'{self.field}' conditions take true/false")
        return self


class FilterRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: RuleAction
    conditions: list[RuleCondition] = Field(..., min_length=1)
    combine_with: Literal["AND"] = Field("AND", alias="combineWith")


class FilterRuleConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    interpretation: str = ""
    rules: list[FilterRule] = Field(default_factory=list)
    default_action: RuleAction = Field("exclude", alias="defaultAction")


# ── Market data ──────────────────────────────────────────


class GameItem(BaseModel):
    id: int
    name: str = ""
    members: bool = False


class PricePoint(BaseModel):
    high: float | None = None
    low: float | None = None


class VolumePoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    high_price_volume: int = Field(0, alias="highPriceVolume")
    low_price_volume: int = Field(0, alias="lowPriceVolume")

    @property
    def total(self) -> int:
        return self.high_price_volume + self.low_price_volume


# ── Results ──────────────────────────────────────────────


class EvaluationStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tradeable_count: int = Field(0, alias="tradeableCount")
    blocked_count: int = Field(0, alias="blockedCount")
    total_items: int = Field(0, alias="totalItems")
    items_without_price_data: int = Field(0, alias="itemsWithoutPriceData")


class EvaluationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tradeable: list[GameItem] = Field(default_factory=list)
    blocked: list[int] = Field(default_factory=list)
    stats: EvaluationStats = Field(default_factory=EvaluationStats)
    interpretation: str = ""

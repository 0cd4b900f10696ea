"""
QuerySpec -- the structured intermediate representation between
natural language and execution (local engine or SQL).

Also holds the transient types produced along the way: the tagged
time-range variants, ``ParsedComponents`` from the extractor and
``IntentResult`` from the classifier.
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ── Enumerations ─────────────────────────────────────────

MetricName = Literal["profit", "roi", "flips", "volume", "avg_hold_time", "weighted_roi"]
Dimension = Literal["item", "date", "hour", "weekday", "account", "time_period"]
MetricOp = Literal["sum", "avg", "count", "min", "max", "calculate"]
FilterOp = Literal[">", "<", ">=", "<=", "=", "!=", "contains", "between", "in"]
SortOrder = Literal["asc", "desc"]
Preset = Literal["last_7d", "last_30d", "this_week", "this_month", "last_month", "all_time"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
Comparison = Literal["weekend_vs_weekday", "weekday_vs_weekend"]

METRIC_NAMES: tuple[str, ...] = get_args(MetricName)
DIMENSIONS: tuple[str, ...] = get_args(Dimension)
METRIC_OPS: tuple[str, ...] = get_args(MetricOp)
FILTER_OPS: tuple[str, ...] = get_args(FilterOp)
PRESETS: tuple[str, ...] = get_args(Preset)
WEEKDAYS: tuple[str, ...] = get_args(Weekday)

# "calculate" is a per-row expression; everything else aggregates.
AGGREGATE_OPS = frozenset(op for op in METRIC_OPS if op != "calculate")

# Default aggregate per metric tag.
DEFAULT_METRIC_OPS: dict[str, str] = {
    "profit": "sum",
    "roi": "avg",
    "flips": "count",
    "volume": "sum",
    "avg_hold_time": "avg",
    "weighted_roi": "avg",
}


# ── Time ranges (tagged by ``kind``) ─────────────────────


class PresetRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["preset"] = "preset"
    preset: Preset


class DayOfWeekRange(BaseModel):
    """A weekday: either the most recent one (``specific``) or every occurrence (``all``)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["day_of_week"] = "day_of_week"
    day_of_week: Weekday
    specific: bool = False
    all_occurrences: bool = Field(False, alias="all")

    @model_validator(mode="after")
    def _exactly_one_mode(self) -> "DayOfWeekRange":
        if self.specific == self.all_occurrences:
            raise ValueError("day_of_week range must be either 'specific' or 'all'")
        return self


class ComparisonRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["comparison"] = "comparison"
    comparison: Comparison


class CustomRange(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["custom"] = "custom"
    date_from: date = Field(..., alias="from")
    date_to: date = Field(..., alias="to")

    @model_validator(mode="after")
    def _ordered(self) -> "CustomRange":
        if self.date_from > self.date_to:
            raise ValueError("custom range 'from' must not be after 'to'")
        return self


TimeRange = Annotated[
    Union[PresetRange, DayOfWeekRange, ComparisonRange, CustomRange],
    Field(discriminator="kind"),
]


# ── Extractor output ─────────────────────────────────────


class ParsedFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: str
    value: Any


class Modifiers(BaseModel):
    exclude: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    only_profitable: bool = False


class ParsedComponents(BaseModel):
    """Typed fragments pulled out of one query. Everything defaults to neutral."""

    time_range: TimeRange | None = None
    items: list[str] = Field(default_factory=list)
    metrics: list[MetricName] = Field(default_factory=list)
    dimensions: list[Dimension] = Field(default_factory=list)
    filters: list[ParsedFilter] = Field(default_factory=list)
    limits: int | None = Field(None, description="Explicit row count, e.g. 'top 10'")
    no_limit: bool = Field(False, description="User explicitly asked for every row ('show all')")
    sort_by: str | None = None
    sort_order: SortOrder = "desc"
    modifiers: Modifiers = Field(default_factory=Modifiers)


class IntentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: str
    pattern: str = Field(..., description="Catalog pattern key, or 'fallback'")
    score: float = Field(..., ge=0.0, le=1.0)


# ── QuerySpec ────────────────────────────────────────────


class MetricSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: MetricName
    op: MetricOp

    @field_validator("metric", mode="before")
    @classmethod
    def _star_is_flip_count(cls, v: Any) -> Any:
        return "flips" if v == "*" else v


class SpecFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOp
    value: Any


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    by: str
    order: SortOrder = "desc"


class SpecTemplate(BaseModel):
    """Default skeleton a catalog pattern contributes before overrides."""

    model_config = ConfigDict(frozen=True)

    metrics: list[MetricSpec] = Field(default_factory=list)
    dimensions: list[Dimension] = Field(default_factory=list)
    filters: list[SpecFilter] = Field(default_factory=list)
    time_range: TimeRange | None = None
    sort: list[SortSpec] = Field(default_factory=list)
    limit: int | None = Field(None, gt=0)
    include_columns: list[str] = Field(default_factory=list)


class QuerySpec(SpecTemplate):
    """Declarative description of what to fetch and how to shape it."""

    intent: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    requires_confirmation: bool = False

    @model_validator(mode="after")
    def _grouped_metrics_are_aggregates(self) -> "QuerySpec":
        if self.dimensions:
            bad = [m.metric for m in self.metrics if m.op not in AGGREGATE_OPS]
            if bad:
                raise ValueError(f"Grouped queries need aggregate metrics; got raw {bad}")
        return self

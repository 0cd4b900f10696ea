"""
Filter rule evaluator -- turns a ``FilterRuleConfig`` plus live market data
into the set of tradeable items and the blocklist (every other item id).

Rules are tried in order; an item takes the action of the first rule whose
conditions all hold, or ``default_action`` when none match.  Items with no
positive high price are not tradeable and land on the blocklist.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from flipdash.blocklist.rules import (
    EvaluationResult,
    EvaluationStats,
    FilterRule,
    FilterRuleConfig,
    GameItem,
    PricePoint,
    RuleCondition,
    VolumePoint,
)
from flipdash.core.logging import get_logger
from flipdash.engine.conditions import evaluate_condition

logger = get_logger(__name__)

_OPERATOR_SYMBOLS: dict[str, str] = {
    "gt": ">",
    "lt": "<",
    "gte": ">=",
    "lte": "<=",
    "eq": "=",
    "between": "between",
}


def _lookup(data: Mapping[Any, Any] | None, item_id: int) -> Any:
    """Market data is keyed by id as str (JSON) or int (Python callers)."""
    if not data:
        return None
    value = data.get(str(item_id))
    if value is None:
        value = data.get(item_id)
    return value


def _as_price(raw: Any) -> PricePoint | None:
    if raw is None or isinstance(raw, PricePoint):
        return raw
    return PricePoint.model_validate(raw)


def _as_volume(raw: Any) -> VolumePoint | None:
    if raw is None or isinstance(raw, VolumePoint):
        return raw
    return VolumePoint.model_validate(raw)


def _field_value(field: str, item: GameItem, price: PricePoint, volume: VolumePoint | None) -> Any:
    if field == "price":
        return price.high
    if field == "volume":
        return volume.total if volume else 0
    if field == "f2p":
        return not item.members
    if field == "members":
        return item.members
    return None


def condition_holds(condition: RuleCondition, item: GameItem, price: PricePoint,
                    volume: VolumePoint | None) -> bool:
    value = _field_value(condition.field, item, price, volume)
    if value is None:
        return False
    result = evaluate_condition(value, _OPERATOR_SYMBOLS[condition.operator], condition.value)
    return bool(result)


def rule_matches(rule: FilterRule, item: GameItem, price: PricePoint,
                 volume: VolumePoint | None) -> bool:
    return all(condition_holds(c, item, price, volume) for c in rule.conditions)


def evaluate_filter_rules(
    config: FilterRuleConfig | Mapping[str, Any],
    items: Iterable[GameItem | Mapping[str, Any]],
    prices: Mapping[Any, Any],
    volumes: Mapping[Any, Any] | None = None,
) -> EvaluationResult:
    """Split *items* into tradeable items and blocked ids.

    Parameters
    ----------
    config : FilterRuleConfig or dict
        Rules as produced by ``translate_filter_query``.
    items : iterable
        Item mapping entries (``id``, ``name``, ``members``).
    prices : mapping
        ``{item_id: {"high": ..., "low": ...}}``.
    volumes : mapping, optional
        ``{item_id: {"highPriceVolume": ..., "lowPriceVolume": ...}}``.
    """
    if not isinstance(config, FilterRuleConfig):
        config = FilterRuleConfig.model_validate(config)

    catalog = [i if isinstance(i, GameItem) else GameItem.model_validate(i) for i in items]
    tradeable: list[GameItem] = []
    without_price = 0

    for item in catalog:
        price = _as_price(_lookup(prices, item.id))
        if price is None or price.high is None:
            without_price += 1
            continue
        if price.high <= 0:
            continue
        volume = _as_volume(_lookup(volumes, item.id))

        action = config.default_action
        for rule in config.rules:
            if rule_matches(rule, item, price, volume):
                action = rule.type
                break
        if action == "include":
            tradeable.append(item)

    tradeable_ids = {i.id for i in tradeable}
    blocked = [i.id for i in catalog if i.id not in tradeable_ids]

    logger.info(
        "Blocklist evaluated: %d tradeable, %d blocked of %d items",
        len(tradeable), len(blocked), len(catalog),
    )
    return EvaluationResult(
        tradeable=tradeable,
        blocked=blocked,
        stats=EvaluationStats(
            tradeable_count=len(tradeable),
            blocked_count=len(blocked),
            total_items=len(catalog),
            items_without_price_data=without_price,
        ),
        interpretation=config.interpretation,
    )


# ── Profile naming ───────────────────────────────────────

_PRICE_TOKEN_RE = re.compile(r"\d+(?:\.\d+)?[kmb]\b", re.IGNORECASE)
_F2P_RE = re.compile(r"\bf2p\b", re.IGNORECASE)
_MEMBERS_RE = re.compile(r"\bmembers?\b", re.IGNORECASE)
_VOLUME_RE = re.compile(r"volume", re.IGNORECASE)

MAX_PROFILE_NAME_CHARS = 30
FALLBACK_NAME_WORDS = 8


def generate_profile_name(config: FilterRuleConfig | Mapping[str, Any] | str) -> str:
    """Short, human-readable profile name derived from the interpretation text.

    ``"Include F2P items priced between 100k and 10m gp"`` -> ``"100k-10m F2P"``.
    """
    if isinstance(config, str):
        text = config
    elif isinstance(config, FilterRuleConfig):
        text = config.interpretation
    else:
        text = str(config.get("interpretation", ""))

    terms: list[str] = []
    prices = _PRICE_TOKEN_RE.findall(text)
    if len(prices) >= 2:
        terms.append(f"{prices[0].lower()}-{prices[1].lower()}")
    elif prices:
        terms.append(prices[0].lower())

    if _F2P_RE.search(text):
        terms.append("F2P")
    elif _MEMBERS_RE.search(text):
        terms.append("Members")

    if _VOLUME_RE.search(text):
        terms.append("High Vol")

    if terms:
        return " ".join(terms)

    fallback = " ".join(text.split()[:FALLBACK_NAME_WORDS]) or "Custom filter"
    if len(fallback) > MAX_PROFILE_NAME_CHARS:
        fallback = fallback[: MAX_PROFILE_NAME_CHARS - 3] + "..."
    return fallback

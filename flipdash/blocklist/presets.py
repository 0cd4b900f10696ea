"""
Ready-made blocklist requests offered alongside free-text input.

Each preset is a plain-language request; its rules come from the
deterministic translator so presets never depend on an LLM being available.
"""
from __future__ import annotations

from dataclasses import dataclass

from flipdash.blocklist.rules import FilterRuleConfig
from flipdash.blocklist.translator import translate_rules


@dataclass(frozen=True)
class BlocklistPreset:
    name: str
    query: str
    description: str

    def config(self) -> FilterRuleConfig:
        return translate_rules(self.query)


PRESETS: tuple[BlocklistPreset, ...] = (
    BlocklistPreset("F2P under 1m", "F2P items under 1 million gp", "Free-to-play items only, budget flips"),
    BlocklistPreset("Budget flips", "Items between 100k and 5m", "Mid-range items for flipping"),
    BlocklistPreset("High-value items", "Items between 5m and 50m", "Expensive items with higher profit margins"),
    BlocklistPreset("Members 1m-10m", "Members-only items between 1m and 10m", "Mid to high-value members items"),
    BlocklistPreset("Wide range", "Items between 100k and 20m", "Broad selection of tradeable items"),
    BlocklistPreset("Low risk flips", "F2P items between 50k and 500k", "Safe, consistent flips for beginners"),
)


def get_preset(name: str) -> BlocklistPreset | None:
    key = name.strip().lower()
    for preset in PRESETS:
        if preset.name.lower() == key:
            return preset
    return None


def simple_range_config(min_price: int, max_price: int, f2p_only: bool = False) -> FilterRuleConfig:
    """Rules for the min/max price form: one include rule, everything else blocked."""
    if min_price > max_price:
        min_price, max_price = max_price, min_price
    conditions = [{"field": "price", "operator": "between", "value": [min_price, max_price]}]
    if f2p_only:
        conditions.append({"field": "f2p", "operator": "eq", "value": True})
    label = "F2P " if f2p_only else ""
    return FilterRuleConfig.model_validate({
        "interpretation": f"Include {label}items between {min_price:,} and {max_price:,} gp",
        "rules": [{"type": "include", "conditions": conditions, "combineWith": "AND"}],
        "defaultAction": "exclude",
    })

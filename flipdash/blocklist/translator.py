"""
Blocklist translator -- natural language -> ``FilterRuleConfig``.

Two backends, chosen by the LLM provider:
  mock              -- deterministic keyword/regex translator (offline, tests)
  openai / anthropic -- LLM returns the rule JSON, fences stripped, validated

Both produce the same wire format (see ``flipdash.blocklist.rules``).  The
default action is ``exclude``: everything is blocked unless a rule includes it.
"""
from __future__ import annotations

import json
import re

from pydantic import ValidationError

from flipdash.assistant.llm_client import call_llm, resolve_provider, strip_code_fences
from flipdash.blocklist.rules import FilterRule, FilterRuleConfig, RuleCondition
from flipdash.core.logging import get_logger
from flipdash.core.utils import format_shorthand, normalize_query, parse_shorthand_number

logger = get_logger(__name__)

HIGH_VOLUME_THRESHOLD = 10_000


class TranslationError(ValueError):
    """The request could not be turned into a valid rule set."""


# ── Deterministic translator ─────────────────────────────

_AMOUNT = r"(\d+(?:\.\d+)?\s*(?:k|m|b|thousand|million|billion)?)\b(?:\s*gp)?"

_WORD_MULTIPLIERS = {"thousand": "k", "million": "m", "billion": "b"}

_CLAUSE_SPLIT_RE = re.compile(r"\s*(?:,\s*)?\b(?:or|except|plus|and also)\b\s*")

_BETWEEN_RE = re.compile(rf"\b(?:between|from)\s+{_AMOUNT}\s+(?:and|to|-)\s+{_AMOUNT}")
_RANGE_RE = re.compile(rf"\b{_AMOUNT}\s*(?:-|to)\s*{_AMOUNT}")
_UNDER_RE = re.compile(rf"\b(?:under|below|less than|cheaper than|up to|max(?:imum)?)\s+{_AMOUNT}")
_OVER_RE = re.compile(rf"\b(?:over|above|more than|greater than|at least|min(?:imum)?)\s+{_AMOUNT}(?!\s*volume)")
_VOLUME_OVER_RE = re.compile(rf"\b(?:{_AMOUNT}\s*\+?\s*volume|volume\s+(?:over|above|of at least|>)\s+{_AMOUNT})")
_HIGH_VOLUME_RE = re.compile(r"\b(?:high|good|lots of)[- ]volume\b")
_F2P_RE = re.compile(r"\bf2p\b|\bfree[- ]to[- ]play\b|\bnon[- ]members?\b")
_MEMBERS_RE = re.compile(r"\bmembers?(?:[- ]only)?\b|\bp2p\b")


def _amount(text: str) -> int | float | None:
    cleaned = text.strip()
    for word, suffix in _WORD_MULTIPLIERS.items():
        cleaned = re.sub(rf"\s*{word}$", suffix, cleaned)
    return parse_shorthand_number(cleaned)


def _clause_conditions(clause: str) -> list[RuleCondition]:
    conditions: list[RuleCondition] = []

    vm = _VOLUME_OVER_RE.search(clause)
    if vm:
        raw = vm.group(1) or vm.group(2)
        conditions.append(RuleCondition(field="volume", operator="gt", value=_amount(raw)))
        clause = clause[: vm.start()] + clause[vm.end():]
    elif _HIGH_VOLUME_RE.search(clause):
        conditions.append(RuleCondition(field="volume", operator="gt", value=HIGH_VOLUME_THRESHOLD))

    bm = _BETWEEN_RE.search(clause) or _RANGE_RE.search(clause)
    if bm:
        low, high = sorted((_amount(bm.group(1)), _amount(bm.group(2))))
        conditions.append(RuleCondition(field="price", operator="between", value=[low, high]))
    else:
        um = _UNDER_RE.search(clause)
        if um:
            conditions.append(RuleCondition(field="price", operator="lt", value=_amount(um.group(1))))
        om = _OVER_RE.search(clause)
        if om:
            conditions.append(RuleCondition(field="price", operator="gt", value=_amount(om.group(1))))

    if _F2P_RE.search(clause):
        conditions.append(RuleCondition(field="f2p", operator="eq", value=True))
    elif _MEMBERS_RE.search(clause):
        conditions.append(RuleCondition(field="members", operator="eq", value=True))

    return conditions


def _describe_condition(c: RuleCondition) -> str:
    if c.field == "price":
        if c.operator == "between":
            return f"priced between {format_shorthand(c.value[0])} and {format_shorthand(c.value[1])} gp"
        word = "under" if c.operator in ("lt", "lte") else "over"
        return f"priced {word} {format_shorthand(c.value)} gp"
    if c.field == "volume":
        return f"with volume over {format_shorthand(c.value)}"
    return ""


def describe_rule(rule: FilterRule) -> str:
    """``Include F2P items priced under 1m gp``."""
    adjective = ""
    for c in rule.conditions:
        if c.field == "f2p" and c.value is True:
            adjective = "F2P "
        elif c.field == "members" and c.value is True:
            adjective = "members "
    details = [d for d in (_describe_condition(c) for c in rule.conditions) if d]
    text = f"{rule.type.capitalize()} {adjective}items"
    if details:
        text += " " + " and ".join(details)
    return text


def translate_rules(text: str) -> FilterRuleConfig:
    """Keyword/regex translation.  Each ``or``/``except`` clause becomes its own include rule."""
    query = normalize_query(text)
    rules: list[FilterRule] = []
    for clause in _CLAUSE_SPLIT_RE.split(query):
        conditions = _clause_conditions(clause)
        if conditions:
            rules.append(FilterRule(type="include", conditions=conditions))

    if not rules:
        logger.info("No blocklist conditions recognised in %r; keeping every item", text)
        return FilterRuleConfig(
            interpretation="No filter conditions recognised; all items stay tradeable",
            rules=[],
            default_action="include",
        )

    interpretation = "; or ".join(describe_rule(r) for r in rules)
    return FilterRuleConfig(interpretation=interpretation, rules=rules, default_action="exclude")


# ── LLM translator ───────────────────────────────────────

_PROMPT = """You convert Old School RuneScape item filter requests into JSON rules.

Reply with JSON only, in exactly this shape:
{{
  "interpretation": "<one sentence describing the filter>",
  "rules": [
    {{"type": "include", "conditions": [{{"field": "price", "operator": "between", "value": [100000, 10000000]}}], "combineWith": "AND"}}
  ],
  "defaultAction": "exclude"
}}

Fields: price (GP, current high price), volume (daily trade volume), f2p (true/false), members (true/false).
Operators: gt, lt, gte, lte, eq, between (value is [min, max]).
Rules are checked in order; the first matching rule decides. Conditions in a rule are AND-ed.
Default to "exclude" and include what the user asks for. Expand shorthand: 1k = 1000, 1m = 1000000.

Examples:
- "F2P items between 100k and 10m" -> one include rule: price between [100000, 10000000] AND f2p eq true
- "Everything under 10m except high volume items" -> include rules: price lt 10000000; volume gt 10000
- "Members items over 1m OR any item with 50k+ volume" -> include rules: members eq true AND price gt 1000000; volume gt 50000

Request: "{query}"
"""


def parse_rule_reply(reply: str) -> FilterRuleConfig:
    """Validate an LLM reply into a ``FilterRuleConfig``; raises ``TranslationError``."""
    try:
        data = json.loads(strip_code_fences(reply))
    except json.JSONDecodeError as exc:
        raise TranslationError(f"Rule translator returned invalid JSON: {exc}") from exc
    try:
        return FilterRuleConfig.model_validate(data)
    except ValidationError as exc:
        raise TranslationError(f"Rule translator returned invalid rules: {exc}") from exc


def translate_filter_query(text: str, provider: str | None = None) -> FilterRuleConfig:
    """Translate a blocklist request with the configured (or overridden) provider."""
    if not text or not text.strip():
        raise TranslationError("Filter request is empty.")

    name = resolve_provider(provider)
    if name == "mock":
        config = translate_rules(text)
    else:
        config = parse_rule_reply(call_llm(_PROMPT.format(query=text.strip()), provider=name))

    logger.info("Blocklist request translated (%s): %d rules", name, len(config.rules))
    return config

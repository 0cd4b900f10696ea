"""
GET /catalog/intents, /catalog/fields, /catalog/items -- metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from flipdash.assistant.item_matcher import get_item_matcher
from flipdash.engine.executor import available_fields, operators_for_field
from flipdash.governance.catalog_loader import load_catalog

router = APIRouter()


class PatternItem(BaseModel):
    key: str
    intent: str
    description: str
    examples: list[str]
    default_limit: int | None


class FieldItem(BaseModel):
    name: str
    type: str
    label: str
    computed: bool = False
    operators: list[str]


class ItemMatchResponse(BaseModel):
    query: str
    matches: list[dict]


@router.get("/catalog/intents")
def list_intents() -> dict:
    """Intents the assistant recognises, with their example phrasings."""
    catalog = load_catalog()
    return {
        "version": catalog.version,
        "intents": catalog.get_intents(),
        "patterns": [PatternItem(**p) for p in catalog.get_patterns_list()],
    }


@router.get("/catalog/fields", response_model=list[FieldItem])
def list_fields() -> list[FieldItem]:
    """Fields the local executor can filter, group and sort on."""
    return [
        FieldItem(
            name=f["name"],
            type=f["type"],
            label=f["label"],
            computed=f.get("computed", False),
            operators=[o["value"] for o in operators_for_field(f["name"])],
        )
        for f in available_fields()
    ]


@router.get("/catalog/items", response_model=ItemMatchResponse)
def match_items(q: str = "") -> ItemMatchResponse:
    """Fuzzy item lookup; an empty query lists the whole dictionary."""
    matcher = get_item_matcher()
    if not q.strip():
        return ItemMatchResponse(query=q, matches=[{"item": name, "score": 1.0} for name in matcher.items])
    return ItemMatchResponse(
        query=q,
        matches=[{"item": m.item, "score": round(m.score, 3)} for m in matcher.find_matches(q)],
    )

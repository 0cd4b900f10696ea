"""
Blocklist endpoints -- natural language -> rules -> tradeable/blocked items ->
downloadable plugin profile.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from flipdash.assistant.llm_client import LLMError
from flipdash.blocklist.evaluator import evaluate_filter_rules, generate_profile_name
from flipdash.blocklist.presets import PRESETS, simple_range_config
from flipdash.blocklist.profile import build_profile, profile_filename, profile_json
from flipdash.blocklist.rules import FilterRuleConfig, GameItem
from flipdash.blocklist.translator import TranslationError, translate_filter_query
from flipdash.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class RulesRequest(BaseModel):
    query: str = Field(..., min_length=3, max_length=500)
    provider: str | None = None


class RangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_price: int = Field(..., ge=0, alias="minPrice")
    max_price: int = Field(..., ge=0, alias="maxPrice")
    f2p_only: bool = Field(False, alias="f2pOnly")


class EvaluateRequest(BaseModel):
    config: FilterRuleConfig
    items: list[GameItem]
    prices: dict[str, Any]
    volumes: dict[str, Any] | None = None


class ProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blocked_item_ids: list[int] = Field(..., alias="blockedItemIds")
    name: str = Field("blocklist", max_length=120)
    timeframe: int | None = Field(None, gt=0)
    f2p_only: bool = Field(False, alias="f2pOnly")


def _rules_payload(config: FilterRuleConfig) -> dict[str, Any]:
    payload = config.model_dump(by_alias=True)
    payload["profileName"] = generate_profile_name(config)
    return payload


@router.post("/rules")
def rules_endpoint(req: RulesRequest) -> dict[str, Any]:
    """Translate a filter request into rule JSON."""
    try:
        config = translate_filter_query(req.query, provider=req.provider)
    except TranslationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except LLMError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except Exception as exc:
        logger.exception("Blocklist translation failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return _rules_payload(config)


@router.post("/rules/range")
def range_rules_endpoint(req: RangeRequest) -> dict[str, Any]:
    """Rules for the simple min/max price form."""
    return _rules_payload(simple_range_config(req.min_price, req.max_price, req.f2p_only))


@router.post("/evaluate")
def evaluate_endpoint(req: EvaluateRequest) -> dict[str, Any]:
    """Apply rules to the item catalog and live prices."""
    result = evaluate_filter_rules(req.config, req.items, req.prices, req.volumes)
    payload = result.model_dump(by_alias=True)
    payload["profileName"] = generate_profile_name(req.config)
    return payload


@router.post("/profile")
def profile_endpoint(req: ProfileRequest) -> Response:
    """Download the blocklist as a plugin profile file."""
    profile = build_profile(req.blocked_item_ids, timeframe=req.timeframe, f2p_only=req.f2p_only)
    filename = profile_filename(req.name)
    return Response(
        content=profile_json(profile),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/presets")
def presets_endpoint() -> list[dict[str, Any]]:
    return [
        {
            "name": p.name,
            "query": p.query,
            "description": p.description,
            "config": p.config().model_dump(by_alias=True),
        }
        for p in PRESETS
    ]

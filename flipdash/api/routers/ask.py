"""POST /ask -- question answering over the caller's flips (plan, confirm, clarify)."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from flipdash.assistant.planner import get_planner
from flipdash.assistant.service import ask as assistant_ask
from flipdash.assistant.spec import QuerySpec
from flipdash.assistant.sql_service import InvalidQueryError, SQLGenerationError
from flipdash.core.logging import get_logger
from flipdash.engine.records import TradeRecord
from flipdash.governance.rate_limit import RateLimitExceeded

logger = get_logger(__name__)
router = APIRouter()


class AskRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=500, description="Natural-language question about your flips")
    records: list[TradeRecord] | None = Field(None, description="Flips to query; omit for a dry run")
    previous_query: str | None = Field(None, description="Previous question, for refinements")
    previous_sql: str | None = Field(None, description="SQL generated for the previous question")
    confirmed: bool = Field(False, description="Run even if the planner asks for confirmation")
    provider: str | None = Field(None, description="mock | openai | anthropic (SQL route only)")


class AskResponse(BaseModel):
    question: str
    outcome: str
    route: str
    spec: dict[str, Any] | None
    preview: str
    confidence: float
    clarification: str
    options: list[str]
    reason: str
    alternatives: list[str]
    sql: str
    rows: list[dict[str, Any]]
    row_count: int
    executed: bool
    errors: list[str]
    latency_ms: int
    success: bool


class ParseRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=500)


class ParseResponse(BaseModel):
    question: str
    outcome: str
    intent: str
    pattern: str
    confidence: float
    components: dict[str, Any]
    spec: dict[str, Any] | None
    preview: str
    clarification: str
    options: list[str]
    reason: str


class ClarifyRequest(BaseModel):
    spec: QuerySpec
    answer: str = Field(..., min_length=1, max_length=200)


class ClarifyResponse(BaseModel):
    outcome: str
    spec: dict[str, Any] | None
    preview: str
    confidence: float
    reason: str


@router.post("", response_model=AskResponse)
def ask_endpoint(req: AskRequest):
    """Full pipeline: question -> plan -> SQL -> execute over the supplied records."""
    try:
        result = assistant_ask(
            req.question,
            records=req.records,
            previous_query=req.previous_query,
            previous_sql=req.previous_sql,
            confirmed=req.confirmed,
            provider=req.provider,
        )
    except InvalidQueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except RateLimitExceeded as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    except SQLGenerationError as exc:
        raise HTTPException(status_code=502, detail=exc.message)
    except Exception as exc:
        logger.exception("Assistant.ask failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return AskResponse(**result.to_dict())


@router.post("/parse", response_model=ParseResponse)
def parse_endpoint(req: ParseRequest):
    """Dry-run: question -> components, intent, confidence and plan outcome (nothing executes)."""
    planner = get_planner()
    try:
        parsed = planner.parse(req.question)
        outcome = planner.plan(req.question)
    except Exception as exc:
        logger.exception("Assistant.parse failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return ParseResponse(
        question=req.question,
        outcome=outcome.type,
        intent=parsed.intent.intent,
        pattern=parsed.intent.pattern,
        confidence=parsed.confidence,
        components=parsed.components.model_dump(mode="json", by_alias=True),
        spec=outcome.spec.model_dump(mode="json", by_alias=True) if outcome.spec else None,
        preview=outcome.preview,
        clarification=outcome.question,
        options=outcome.options,
        reason=outcome.reason,
    )


@router.post("/clarify", response_model=ClarifyResponse)
def clarify_endpoint(req: ClarifyRequest):
    """Apply the user's answer to a clarification question; the result needs confirmation."""
    try:
        outcome = get_planner().clarify(req.spec, req.answer)
    except Exception as exc:
        logger.exception("Assistant.clarify failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return ClarifyResponse(
        outcome=outcome.type,
        spec=outcome.spec.model_dump(mode="json", by_alias=True) if outcome.spec else None,
        preview=outcome.preview,
        confidence=outcome.confidence,
        reason=outcome.reason,
    )

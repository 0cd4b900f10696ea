"""POST /execute -- run a query config, a QuerySpec or raw SQL over supplied flips."""
from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError

from flipdash.assistant.spec import QuerySpec
from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger
from flipdash.db.executor import QueryExecutionError, execute_sql_over_records
from flipdash.engine.executor import QueryConfig, execute_query, validate_query_config
from flipdash.engine.records import TradeRecord
from flipdash.governance.sql_safety import UnsafeSQLError
from flipdash.governance.validator import validate_capabilities

logger = get_logger(__name__)
router = APIRouter()


class ExecuteRequest(BaseModel):
    records: list[TradeRecord] = Field(default_factory=list)
    config: dict[str, Any] | None = Field(None, description="filters / groupBy / sortBy / sortOrder / limit")
    spec: QuerySpec | None = None
    today: date | None = Field(None, description="Reference date for relative time ranges")


class ValidateRequest(BaseModel):
    config: dict[str, Any] | None = None


class SQLExecuteRequest(BaseModel):
    sql: str = Field(..., min_length=1)
    records: list[TradeRecord] = Field(default_factory=list)


class RowsResponse(BaseModel):
    rows: list[dict[str, Any]]
    row_count: int
    truncated: bool = False


class ValidationResponse(BaseModel):
    errors: list[str]
    is_valid: bool


def _cap(rows: list[dict[str, Any]]) -> RowsResponse:
    max_rows = get_settings().max_result_rows
    return RowsResponse(rows=rows[:max_rows], row_count=min(len(rows), max_rows), truncated=len(rows) > max_rows)


@router.post("", response_model=RowsResponse)
def execute_endpoint(req: ExecuteRequest):
    """Local execution: filters -> group -> sort -> limit, no SQL involved."""
    if req.spec is not None:
        errors = validate_capabilities(req.spec)
        if errors:
            raise HTTPException(status_code=400, detail=errors)
        target: QuerySpec | QueryConfig = req.spec
    else:
        errors = validate_query_config(req.config)
        if errors:
            raise HTTPException(status_code=400, detail=errors)
        try:
            target = QueryConfig.model_validate(req.config)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=[e["msg"] for e in exc.errors()])

    try:
        rows = execute_query(target, req.records, today=req.today)
    except Exception as exc:
        logger.exception("Local execution failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return _cap(rows)


@router.post("/validate", response_model=ValidationResponse)
def validate_endpoint(req: ValidateRequest):
    errors = validate_query_config(req.config)
    return ValidationResponse(errors=errors, is_valid=not errors)


@router.post("/sql", response_model=RowsResponse)
def execute_sql_endpoint(req: SQLExecuteRequest):
    """Run one SELECT over the records in a read-only in-memory SQLite table."""
    try:
        rows = execute_sql_over_records(req.sql, req.records)
    except UnsafeSQLError as exc:
        raise HTTPException(status_code=400, detail={"error": "SQL failed safety check", "reasons": exc.errors})
    except QueryExecutionError as exc:
        raise HTTPException(status_code=400, detail={"error": "SQL execution failed", "message": str(exc)})
    return _cap(rows)

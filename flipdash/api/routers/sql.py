"""
POST /generate-sql -- the SQL-generation contract.

    200  {"sql": "..."}
    400  {"error": "Query is required" | "Query must be ..."}
    400  {"error": "Generated SQL failed safety check", "reason": "..."}
    429  {"error": "Too many requests", "retryAfter": seconds}
    500  {"error": "Failed to generate SQL", "message": "..."}
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from flipdash.assistant.sql_service import (
    InvalidQueryError,
    SQLGenerationError,
    SQLGenerationRequest,
    generate_sql,
)
from flipdash.core.logging import get_logger
from flipdash.governance.rate_limit import FixedWindowRateLimiter, RateLimitExceeded, get_rate_limiter
from flipdash.governance.sql_safety import UnsafeSQLError

logger = get_logger(__name__)
router = APIRouter()


def rate_limiter() -> FixedWindowRateLimiter:
    """Injected limiter; tests override this dependency."""
    return get_rate_limiter()


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/generate-sql")
def generate_sql_endpoint(
    body: SQLGenerationRequest,
    request: Request,
    limiter: FixedWindowRateLimiter = Depends(rate_limiter),
):
    """Natural language (plus optional previous turn) -> one safety-checked SELECT."""
    try:
        limiter.check(client_key(request))
    except RateLimitExceeded as exc:
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests", "retryAfter": round(exc.retry_after)},
            headers={"Retry-After": str(round(exc.retry_after))},
        )

    try:
        result = generate_sql(body)
    except InvalidQueryError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except UnsafeSQLError as exc:
        return JSONResponse(
            status_code=400,
            content={"error": "Generated SQL failed safety check", "reason": "; ".join(exc.errors)},
        )
    except SQLGenerationError as exc:
        return JSONResponse(status_code=500, content={"error": "Failed to generate SQL", "message": exc.message})
    except Exception as exc:
        logger.exception("generate-sql failed")
        return JSONResponse(status_code=500, content={"error": "Failed to generate SQL", "message": str(exc)})

    return JSONResponse(status_code=200, content={"sql": result.sql}, headers={"Cache-Control": "no-cache"})

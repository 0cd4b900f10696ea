"""
HTTP client for a remote SQL-generation service speaking the
``POST /generate-sql`` contract.

Status mapping:
  200  -> SQL (re-checked with the local safety gate before it is returned)
  400  -> InvalidQueryError, or UnsafeSQLError when the service reports a
          failed safety check
  429  -> RateLimitExceeded (``Retry-After`` honoured when present)
  5xx  -> SQLGenerationError with the service's ``message``
"""
from __future__ import annotations

from typing import Any

import httpx

from flipdash.assistant.sql_service import (
    InvalidQueryError,
    SQLGenerationError,
    SQLGenerationRequest,
)
from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger
from flipdash.governance.rate_limit import RateLimitExceeded
from flipdash.governance.sql_safety import UnsafeSQLError, ensure_safe_sql

logger = get_logger(__name__)

_SAFETY_FAILURE = "Generated SQL failed safety check"


class SQLGenerationClient:
    """Synchronous client; pass ``http_client`` to reuse a pool or inject a transport."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.sql_service_url).rstrip("/")
        if not self._base_url:
            raise ValueError("SQL service URL is not configured (SQL_SERVICE_URL)")
        self._timeout = timeout or settings.sql_service_timeout
        self._http_client = http_client

    def _client(self) -> httpx.Client:
        if self._http_client is not None:
            return self._http_client
        return httpx.Client(timeout=self._timeout)

    @staticmethod
    def _detail(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"error": response.text[:500]}
        if isinstance(body, dict) and isinstance(body.get("detail"), dict):
            return body["detail"]
        return body if isinstance(body, dict) else {"error": str(body)}

    def generate(self, request: SQLGenerationRequest | dict[str, Any]) -> str:
        if not isinstance(request, SQLGenerationRequest):
            request = SQLGenerationRequest.model_validate(request)
        payload = request.model_dump(by_alias=True, exclude_none=True)
        url = f"{self._base_url}/generate-sql"

        client = self._client()
        should_close = self._http_client is None
        try:
            response = client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("SQL service unreachable: %s", exc)
            raise SQLGenerationError(f"SQL service unreachable: {exc}") from exc
        finally:
            if should_close:
                client.close()

        detail = self._detail(response)
        if response.status_code == 200:
            sql = detail.get("sql") or ""
            logger.info("Remote SQL received (%d chars)", len(sql))
            return ensure_safe_sql(sql)
        if response.status_code == 400:
            if detail.get("error") == _SAFETY_FAILURE:
                raise UnsafeSQLError([str(detail.get("reason") or _SAFETY_FAILURE)])
            raise InvalidQueryError(str(detail.get("error") or "Invalid query"))
        if response.status_code == 429:
            retry_after = float(response.headers.get("Retry-After", 0) or 0)
            raise RateLimitExceeded(request.session_id or "remote", retry_after)

        logger.error("SQL service error %d: %s", response.status_code, detail)
        raise SQLGenerationError(str(detail.get("message") or detail.get("error") or response.status_code))

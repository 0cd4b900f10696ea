"""
Unit tests -- FastAPI endpoints via TestClient (mock LLM provider, no network).
"""
import json

import pytest
from fastapi.testclient import TestClient

from flipdash.api.main import app
from flipdash.api.routers import sql
from flipdash.core.config import get_settings
from flipdash.governance.rate_limit import FixedWindowRateLimiter

client = TestClient(app)

RECORDS = [
    {"item": "Abyssal whip", "quantity": 1, "avg_buy_price": 1_500_000, "avg_sell_price": 1_600_000,
     "opened_at": "2026-10-13T10:00:00", "closed_at": "2026-10-13T12:00:00"},
    {"item": "Dragon scimitar", "quantity": 10, "avg_buy_price": 60_000, "avg_sell_price": 59_000,
     "opened_at": "2026-10-10T16:00:00", "closed_at": "2026-10-10T18:00:00"},
    {"item": "Abyssal whip", "quantity": 2, "avg_buy_price": 1_550_000, "avg_sell_price": 1_570_000,
     "opened_at": "2026-10-11T18:00:00", "closed_at": "2026-10-11T20:00:00", "account": "alt"},
]


@pytest.fixture(autouse=True)
def _mock_provider(monkeypatch):
    monkeypatch.setattr(get_settings(), "llm_provider", "mock")
    monkeypatch.setattr(get_settings(), "sql_service_url", "")
    limiter = FixedWindowRateLimiter(max_requests=100, window_seconds=60)
    app.dependency_overrides[sql.rate_limiter] = lambda: limiter
    yield
    app.dependency_overrides.clear()


# ── 1. Health ────────────────────────────────────────────

def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "llm_provider": "mock"}


# ── 2. /ask ──────────────────────────────────────────────

def test_ask_parsed_and_executed():
    r = client.post("/ask", json={"question": "top 10 most profitable flips", "records": RECORDS})
    assert r.status_code == 200
    data = r.json()
    assert data["outcome"] == "parsed"
    assert data["route"] == "local"
    assert data["executed"] is True
    assert data["success"] is True
    assert data["sql"].startswith("SELECT")
    assert data["rows"][0]["group"] == "Abyssal whip"


def test_ask_dry_run():
    data = client.post("/ask", json={"question": "top 10 most profitable flips"}).json()
    assert data["executed"] is False
    assert data["rows"] == []


def test_ask_confirm_waits_until_confirmed():
    body = {"question": "weekend vs weekday profit", "records": RECORDS}
    first = client.post("/ask", json=body).json()
    assert first["outcome"] == "confirm"
    assert first["executed"] is False

    second = client.post("/ask", json={**body, "confirmed": True}).json()
    assert second["executed"] is True
    assert {row["group"] for row in second["rows"]} == {"weekday", "weekend"}


def test_ask_too_short():
    assert client.post("/ask", json={"question": "hi"}).status_code == 422


def test_parse():
    r = client.post("/ask/parse", json={"question": "top 10 most profitable flips"})
    assert r.status_code == 200
    data = r.json()
    assert data["outcome"] == "parsed"
    assert data["intent"] == "top_items_by_profit"
    assert data["spec"]["limit"] == 10
    assert data["preview"] == "Show total profit grouped by item (showing top 10 results)"


def test_parse_impossible():
    data = client.post("/ask/parse", json={"question": "predict the whip price next week"}).json()
    assert data["outcome"] == "impossible"
    assert data["reason"]


def test_clarify():
    spec = {"intent": "profit_analysis", "metrics": [{"metric": "profit", "op": "sum"}], "confidence": 0.6}
    r = client.post("/ask/clarify", json={"spec": spec, "answer": "abyssal whip"})
    assert r.status_code == 200
    data = r.json()
    assert data["outcome"] == "confirm"
    assert data["spec"]["intent"] == "item_analysis"


# ── 3. /generate-sql ─────────────────────────────────────

def test_generate_sql():
    r = client.post("/generate-sql", json={"query": "top 10 most profitable flips"})
    assert r.status_code == 200
    assert r.json()["sql"].endswith("LIMIT 10")
    assert r.headers["cache-control"] == "no-cache"


def test_generate_sql_empty_query():
    r = client.post("/generate-sql", json={"query": ""})
    assert r.status_code == 400
    assert r.json() == {"error": "Query is required"}


def test_generate_sql_rate_limited():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60)
    app.dependency_overrides[sql.rate_limiter] = lambda: limiter

    assert client.post("/generate-sql", json={"query": "top 10 most profitable flips"}).status_code == 200
    r = client.post("/generate-sql", json={"query": "top 10 most profitable flips"})
    assert r.status_code == 429
    assert r.json()["error"] == "Too many requests"
    assert 0 < int(r.headers["retry-after"]) <= 60


# ── 4. /execute ──────────────────────────────────────────

def test_execute_config():
    config = {"filters": [{"field": "profit", "operator": ">", "value": 0}], "sortBy": "profit", "sortOrder": "desc"}
    r = client.post("/execute", json={"records": RECORDS, "config": config})
    assert r.status_code == 200
    data = r.json()
    assert data["row_count"] == 2
    assert [row["profit"] for row in data["rows"]] == [100_000, 40_000]
    assert data["truncated"] is False


def test_execute_invalid_config():
    r = client.post("/execute", json={"records": RECORDS, "config": {"sortBy": "profit", "sortOrder": "sideways"}})
    assert r.status_code == 400
    assert r.json()["detail"] == ['sortOrder must be "asc" or "desc"']


def test_execute_spec():
    spec = {
        "intent": "top_items_by_profit",
        "metrics": [{"metric": "profit", "op": "sum"}],
        "dimensions": ["item"],
        "limit": 1,
        "confidence": 0.9,
    }
    data = client.post("/execute", json={"records": RECORDS, "spec": spec, "today": "2026-10-15"}).json()
    assert data["row_count"] == 1
    assert data["rows"][0]["group"] == "Abyssal whip"
    assert data["rows"][0]["total_profit"] == 140_000


def test_validate():
    assert client.post("/execute/validate", json={"config": {}}).json() == {"errors": [], "is_valid": True}
    data = client.post("/execute/validate", json={"config": {"limit": -1}}).json()
    assert data["is_valid"] is False


def test_execute_sql():
    r = client.post("/execute/sql", json={"sql": "SELECT COUNT(*) AS n FROM flips", "records": RECORDS})
    assert r.status_code == 200
    assert r.json()["rows"] == [{"n": 3}]


def test_execute_sql_unsafe():
    r = client.post("/execute/sql", json={"sql": "DELETE FROM flips", "records": RECORDS})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "SQL failed safety check"


# ── 5. /blocklist ────────────────────────────────────────

def test_blocklist_rules():
    r = client.post("/blocklist/rules", json={"query": "F2P items between 100k and 10m", "provider": "mock"})
    assert r.status_code == 200
    data = r.json()
    assert data["defaultAction"] == "exclude"
    assert data["profileName"] == "100k-10m F2P"


def test_blocklist_range():
    data = client.post("/blocklist/rules/range", json={"minPrice": 1000, "maxPrice": 5000, "f2pOnly": False}).json()
    assert data["rules"][0]["conditions"] == [{"field": "price", "operator": "between", "value": [1000, 5000]}]


def test_blocklist_evaluate():
    body = {
        "config": {"rules": [{"type": "include", "conditions": [{"field": "price", "operator": "lt", "value": 100}]}]},
        "items": [{"id": 1, "name": "Bronze arrow"}, {"id": 2, "name": "Abyssal whip", "members": True}],
        "prices": {"1": {"high": 10, "low": 9}, "2": {"high": 1_500_000, "low": 1_480_000}},
    }
    data = client.post("/blocklist/evaluate", json=body).json()
    assert data["blocked"] == [2]
    assert data["stats"]["tradeableCount"] == 1


def test_blocklist_profile_download():
    r = client.post("/blocklist/profile", json={"blockedItemIds": [5, 2], "name": "cheap stuff"})
    assert r.status_code == 200
    assert r.headers["content-disposition"] == 'attachment; filename="cheap stuff.profile.json"'
    assert json.loads(r.content)["blockedItemIds"] == [2, 5]


def test_blocklist_presets():
    presets = client.get("/blocklist/presets").json()
    assert len(presets) == 6
    assert all(p["config"]["rules"] for p in presets)


# ── 6. /catalog ──────────────────────────────────────────

def test_catalog_intents():
    data = client.get("/catalog/intents").json()
    assert "top_items_by_profit" in data["intents"]
    assert data["patterns"]


def test_catalog_fields():
    fields = {f["name"]: f for f in client.get("/catalog/fields").json()}
    assert "between" in fields["profit"]["operators"]


def test_catalog_items():
    data = client.get("/catalog/items", params={"q": "abyssal whip"}).json()
    assert data["matches"][0]["item"] == "abyssal whip"

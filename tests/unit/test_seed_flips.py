"""
Unit tests -- seed flip generator.
"""
import json
from datetime import date, datetime, timedelta

import pytest

from flipdash.engine.records import TradeRecord
from pipelines.seed.seed_flips import HISTORY_DAYS, generate_flips, write_flips

TODAY = date(2026, 10, 15)


@pytest.fixture(scope="module")
def flips() -> list[TradeRecord]:
    return generate_flips(n=50, seed=7, today=TODAY)


def test_count(flips):
    assert len(flips) == 50


def test_deterministic(flips):
    again = generate_flips(n=50, seed=7, today=TODAY)
    assert [f.model_dump() for f in again] == [f.model_dump() for f in flips]


def test_sorted_by_close_time(flips):
    closes = [f.closed_at for f in flips]
    assert closes == sorted(closes)


def test_history_window(flips):
    start = datetime.combine(TODAY - timedelta(days=HISTORY_DAYS), datetime.min.time())
    end = datetime.combine(TODAY, datetime.min.time())
    for f in flips:
        assert start <= f.opened_at <= f.closed_at < end


def test_accounts_include_main(flips):
    accounts = {f.account for f in flips}
    assert "main" in accounts
    assert len(accounts) <= 3


def test_profit_is_derived(flips):
    for f in flips:
        assert f.profit == (f.avg_sell_price - f.avg_buy_price) * f.quantity - f.tax


def test_write_flips_round_trip(tmp_path, flips):
    path = tmp_path / "out" / "flips.json"
    write_flips(path, flips[:5])
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert [TradeRecord.model_validate(p) for p in payload] == flips[:5]

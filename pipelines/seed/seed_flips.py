"""
Seed data generator -- creates a realistic flip history for demos and the
evaluation harness.

Generates ~1 500 completed flips over the last 120 days across three
accounts, using the item dictionary in ``query_catalog/items.yml``.  Each
item gets a stable base price; individual flips buy near it and sell a
small margin above (or, sometimes, below) it, with the 1% GE tax applied.

Run:  python -m pipelines.seed.seed_flips [output.json]
"""
from __future__ import annotations

import json
import random
import sys
from datetime import date, datetime, time, timedelta
from pathlib import Path

from faker import Faker

from flipdash.engine.records import TradeRecord
from flipdash.governance.catalog_loader import load_item_dictionary

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_OUTPUT = _PROJECT_ROOT / "pipelines" / "seed" / "sample_flips.json"

# ── Tunables ─────────────────────────────────────────────
NUM_FLIPS = 1_500
NUM_ACCOUNTS = 3
HISTORY_DAYS = 120
LOSS_RATE = 0.12
GE_TAX_RATE = 0.01
GE_TAX_CAP = 5_000_000
MIN_PRICE = 50
MAX_PRICE = 1_500_000_000


def _base_prices(items: list[str], rng: random.Random) -> dict[str, int]:
    """Log-uniform base price per item, so cheap and expensive items both appear."""
    prices: dict[str, int] = {}
    for name in items:
        exponent = rng.uniform(2.0, 9.0)
        prices[name] = int(min(max(10 ** exponent, MIN_PRICE), MAX_PRICE))
    return prices


def _quantity_for(price: int, rng: random.Random) -> int:
    if price >= 50_000_000:
        return 1
    if price >= 1_000_000:
        return rng.randint(1, 5)
    if price >= 10_000:
        return rng.randint(5, 200)
    return rng.randint(100, 15_000)


def generate_flips(
    n: int = NUM_FLIPS,
    seed: int = 42,
    today: date | None = None,
) -> list[TradeRecord]:
    """Deterministic flip history ending *today* (defaults to the real today)."""
    rng = random.Random(seed)
    fake = Faker()
    Faker.seed(seed)
    today = today or date.today()

    items = list(load_item_dictionary().items)
    prices = _base_prices(items, rng)
    accounts = ["main"] + [fake.unique.user_name()[:12] for _ in range(NUM_ACCOUNTS - 1)]

    start = datetime.combine(today - timedelta(days=HISTORY_DAYS), time.min)
    end = datetime.combine(today, time.min) - timedelta(minutes=1)

    flips: list[TradeRecord] = []
    for _ in range(n):
        item = rng.choice(items)
        base = prices[item]
        buy = max(1, int(base * rng.uniform(0.97, 1.01)))
        margin = rng.uniform(0.005, 0.06)
        if rng.random() < LOSS_RATE:
            margin = -rng.uniform(0.005, 0.04)
        sell = max(1, int(buy * (1 + margin)))
        quantity = _quantity_for(base, rng)
        tax = min(int(sell * GE_TAX_RATE) * quantity, GE_TAX_CAP)

        closed = fake.date_time_between(start_date=start, end_date=end)
        held = timedelta(minutes=int(rng.expovariate(1 / 240)) + 5)
        opened = max(start, closed - held)

        flips.append(TradeRecord(
            item=item.title() if rng.random() < 0.5 else item.capitalize(),
            quantity=quantity,
            avg_buy_price=buy,
            avg_sell_price=sell,
            tax=tax,
            opened_at=opened,
            closed_at=closed,
            account=rng.choice(accounts),
        ))

    flips.sort(key=lambda f: f.closed_at)
    return flips


def write_flips(path: Path, flips: list[TradeRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [f.model_dump(mode="json") for f in flips]
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def main() -> None:
    output = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT
    flips = generate_flips()
    write_flips(output, flips)
    total = sum(f.profit or 0 for f in flips)
    print(f"Wrote {len(flips)} flips ({total:,.0f} gp total profit) to {output}")


if __name__ == "__main__":
    main()

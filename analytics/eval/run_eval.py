"""
Evaluation harness -- runs eval_questions.jsonl through the assistant over
seeded flips and generates analytics/reports/eval_report.md.

Checks:
  - Intent correctness    (classified intent matches expected)
  - Outcome correctness   (parsed / confirm / clarify / impossible)
  - Metric correctness    (spec metric names match expected, when given)
  - Limit correctness     (spec limit matches expected, when given; null = no limit)
  - SQL safety            (rendered SQL passes the safety gate)
  - Execution             (rows returned from the local executor)
  - Latency               (end-to-end ms)
"""
from __future__ import annotations

import datetime
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "eval_questions.jsonl"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "eval_report.md"


def _load_questions() -> list[dict[str, Any]]:
    lines = EVAL_PATH.read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _run_one(q: dict[str, Any], records: list) -> dict[str, Any]:
    """Run a single question through the assistant pipeline."""
    from flipdash.assistant.service import ask

    question = q["question"]
    try:
        result = ask(question, records=records, confirmed=True, provider="mock")
    except Exception as exc:
        return {
            "question": question,
            "error": str(exc),
            "latency_ms": 0,
            "intent_ok": False,
            "outcome_ok": False,
            "metrics_ok": False,
            "limit_ok": False,
            "sql_safe": False,
            "rows_returned": 0,
            "success": False,
            "generated_sql": "",
        }

    spec = result.outcome.spec
    intent_ok = "expected_intent" not in q or (spec is not None and spec.intent == q["expected_intent"])
    outcome_ok = result.outcome.type == q.get("expected_outcome", "parsed")

    metrics_ok = True
    if "expected_metrics" in q:
        metrics_ok = spec is not None and [m.metric for m in spec.metrics] == q["expected_metrics"]

    limit_ok = True
    if "expected_limit" in q:
        limit_ok = spec is not None and spec.limit == q["expected_limit"]

    sql_safe = not result.errors
    success = intent_ok and outcome_ok and metrics_ok and limit_ok and sql_safe

    return {
        "question": question,
        "error": None,
        "latency_ms": result.latency_ms,
        "intent_ok": intent_ok,
        "outcome_ok": outcome_ok,
        "metrics_ok": metrics_ok,
        "limit_ok": limit_ok,
        "sql_safe": sql_safe,
        "rows_returned": len(result.rows),
        "success": success,
        "generated_sql": result.sql,
        "outcome": result.outcome.type,
        "intent": spec.intent if spec else None,
        "errors": result.errors,
    }


def _rate(part: int, whole: int) -> float:
    return (part / whole * 100) if whole else 0


def _percentile(sorted_values: list[int], q: float) -> int:
    if not sorted_values:
        return 0
    return sorted_values[min(int(len(sorted_values) * q), len(sorted_values) - 1)]


def _generate_report(results: list[dict[str, Any]]) -> str:
    """Generate the Markdown eval report."""
    total = len(results)
    now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")

    successes = sum(1 for r in results if r["success"])
    checks = {
        "Intent correctness": sum(1 for r in results if r["intent_ok"]),
        "Outcome correctness": sum(1 for r in results if r["outcome_ok"]),
        "Metric correctness": sum(1 for r in results if r["metrics_ok"]),
        "Limit correctness": sum(1 for r in results if r["limit_ok"]),
        "SQL passes safety gate": sum(1 for r in results if r["sql_safe"]),
    }

    latencies = sorted(r["latency_ms"] for r in results)
    outcomes = Counter(r.get("outcome") or "error" for r in results)

    lines: list[str] = []
    lines.append("# Evaluation Report")
    lines.append("")
    lines.append(f"> Generated: {now}  |  Questions: **{total}**  |  Provider: `mock` (rule-based pipeline)")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Check | Value |")
    lines.append("|-------|-------|")
    lines.append(f"| Overall success rate | **{_rate(successes, total):.0f}%** ({successes}/{total}) |")
    for name, count in checks.items():
        lines.append(f"| {name} | **{_rate(count, total):.0f}%** ({count}/{total}) |")
    lines.append("")
    lines.append("## Outcomes and latency")
    lines.append("")
    lines.append(" / ".join(f"{name}: {count}" for name, count in sorted(outcomes.items())))
    lines.append("")
    lines.append(f"Latency ms: p50 {_percentile(latencies, 0.5)}, p95 {_percentile(latencies, 0.95)}, "
                 f"max {latencies[-1] if latencies else 0}")
    lines.append("")

    example = next((r for r in results if r["generated_sql"] and r["success"]), None)
    if example:
        lines.append("## Example SQL")
        lines.append("")
        lines.append(f"**Question:** *\"{example['question']}\"*")
        lines.append("")
        lines.append("```sql")
        lines.append(example["generated_sql"])
        lines.append("```")
        lines.append("")

    lines.append("## Per-Question Results")
    lines.append("")
    lines.append("| # | Question | Outcome | Intent | Rows | Latency | Pass |")
    lines.append("|---|----------|---------|--------|------|---------|------|")
    for i, r in enumerate(results, 1):
        qtext = r["question"][:55] + ("..." if len(r["question"]) > 55 else "")
        lines.append(
            f"| {i} | {qtext} | {r.get('outcome') or '--'} | {r.get('intent') or '--'} | "
            f"{r['rows_returned'] or '--'} | {r['latency_ms']} | {'OK' if r['success'] else 'ERROR'} |"
        )
    lines.append("")

    failures = [r for r in results if not r["success"]]
    lines.append("## Failures")
    lines.append("")
    if not failures:
        lines.append("Every question matched its expectations.")
    for r in failures:
        lines.append(f"### {r['question']}")
        lines.append("")
        if r.get("error"):
            lines.append(f"**Error:** `{r['error']}`")
        for key in ("intent_ok", "outcome_ok", "metrics_ok", "limit_ok", "sql_safe"):
            if not r[key]:
                lines.append(f"- {key.replace('_ok', '').replace('_', ' ')} check failed")
        lines.append("")

    return "\n".join(lines)


def run() -> int:
    from pipelines.seed.seed_flips import generate_flips

    questions = _load_questions()
    records = generate_flips()
    print(f"Loaded {len(questions)} eval questions, {len(records)} seeded flips.")

    results = []
    for i, q in enumerate(questions, 1):
        r = _run_one(q, records)
        status = "PASS" if r["success"] else "FAIL"
        print(f"  [{i:2d}/{len(questions)}] {status}  {r['question'][:60]:<60}  {r['latency_ms']:>4d}ms  rows={r['rows_returned']}")
        results.append(r)

    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text(_generate_report(results), encoding="utf-8")
    print(f"\nReport written to {REPORT_PATH}")

    successes = sum(1 for r in results if r["success"])
    print(f"\n  Success: {successes}/{len(results)} ({_rate(successes, len(results)):.0f}%)")
    return 0 if successes == len(results) else 1


if __name__ == "__main__":
    sys.exit(run())

"""
Deterministic SQL safety checks (non-LLM).

These checks are the final gate before any SQL is executed, whichever path
produced it (spec renderer, LLM, remote service).  They operate purely on
the SQL text.

Checks performed:
  1. SQL must start with SELECT (or WITH for CTEs)
  2. No multi-statement SQL
  3. No dangerous keywords (DROP, DELETE, INSERT, UPDATE, ALTER, CREATE,
     TRUNCATE, EXEC, EXECUTE); the violation names the keyword
  4. No SQL comments (injection vector)
  5. Only the ``flips`` table (and CTEs defined in the query) may be read
"""
from __future__ import annotations

import re

from flipdash.core.logging import get_logger

logger = get_logger(__name__)

ALLOWED_TABLES = frozenset({"flips"})

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|DELETE|INSERT|UPDATE|ALTER|CREATE|TRUNCATE|EXECUTE|EXEC)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")

_FROM_JOIN_RE = re.compile(r"\b(?:FROM|JOIN)\s+([A-Za-z_][\w.]*)", re.IGNORECASE)
_CTE_NAME_RE = re.compile(r"(?:\bWITH|,)\s*([A-Za-z_]\w*)\s+AS\s*\(", re.IGNORECASE)


class UnsafeSQLError(ValueError):
    """Raised when SQL fails the safety gate; never execute it."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    errors: list[str] = []
    sql_stripped = (sql or "").strip()
    if not sql_stripped:
        return ["SQL is empty."]

    # ── 1. Must start with SELECT (or WITH … SELECT for CTEs) ─────
    upper = sql_stripped.upper()
    if not (upper.startswith("SELECT") or upper.startswith("WITH")):
        errors.append("SQL must be a SELECT statement.")

    # ── 2. No multi-statement ────────────────────────
    if _MULTI_STMT.search(sql_stripped):
        errors.append("Multi-statement SQL is not allowed (found ';' followed by another statement).")

    # ── 3. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 4. No SQL comments ───────────────────────────
    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    # ── 5. Allowed tables only ───────────────────────
    ctes = {name.lower() for name in _CTE_NAME_RE.findall(sql_stripped)}
    for ref in _FROM_JOIN_RE.findall(sql_stripped):
        name = ref.lower()
        if name not in ALLOWED_TABLES and name not in ctes:
            errors.append(f"Table '{ref}' is not in the allowed tables list.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors


def ensure_safe_sql(sql: str) -> str:
    """Return *sql* stripped of surrounding whitespace and a trailing ';', or raise."""
    errors = check_sql_safety(sql)
    if errors:
        raise UnsafeSQLError(errors)
    return sql.strip().rstrip(";").strip()

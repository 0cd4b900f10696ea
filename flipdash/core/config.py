"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_DEFAULT_CATALOG_DIR = Path(__file__).resolve().parents[2] / "query_catalog"


class Settings(BaseSettings):
    # ── Storage ──────────────────────────────────────────
    # Audit log only; flip records are never persisted.
    database_url: str = "sqlite://"

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # ── SQL generation service ───────────────────────────
    sql_service_url: str = ""  # empty -> generate in-process
    sql_service_timeout: float = 30.0

    # ── Rate limiting (fixed window, per client) ─────────
    rate_limit_requests: int = 20
    rate_limit_window_seconds: float = 60.0

    # ── Query bounds ─────────────────────────────────────
    query_min_length: int = 3
    query_max_length: int = 500
    max_result_rows: int = 1000

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"
    catalog_dir: Path = _DEFAULT_CATALOG_DIR

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()

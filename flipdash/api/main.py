"""
FastAPI application entry-point.

    uvicorn flipdash.api.main:app --reload
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flipdash.api.routers import ask, blocklist, catalog, execute, sql
from flipdash.core.config import get_settings

app = FastAPI(
    title="Flipdash Query Assistant",
    version="0.1.0",
    description="Natural-language questions, blocklists and SQL over OSRS flip history",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/ask", tags=["Assistant"])
app.include_router(sql.router, tags=["SQL generation"])
app.include_router(execute.router, prefix="/execute", tags=["Execution"])
app.include_router(blocklist.router, prefix="/blocklist", tags=["Blocklist"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
def health():
    return {"status": "ok", "llm_provider": get_settings().llm_provider}


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("flipdash.api.main:app", host="0.0.0.0", port=settings.api_port)

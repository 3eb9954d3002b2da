"""
CV Chat Assistant — FastAPI Application
=======================================
Main application entry point: loads the knowledge base once at startup
and exposes the chat router plus health checks.

Startup:
  1. Load and validate the knowledge base (fails fast on violations)
  2. Build the keyword / semantic index
  3. Initialize the in-memory session registry

Run:
  uvicorn api.main:app --host 0.0.0.0 --port 8000

Environment:
  KNOWLEDGE_BASE_PATH         — Knowledge base JSON (default: bundled sample)
  CONTACT_EMAIL               — Overrides metadata.contact_email for handoff links
  CORS_ORIGINS                — Comma-separated allowed origins
  MAX_SESSIONS                — Cap on concurrent in-memory sessions (default 1000)
  LOG_LEVEL                   — Logging level (default INFO)
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.chat_routes import router as chat_router
from chatbot.knowledge_index import KnowledgeIndex
from chatbot.loader import DEFAULT_KNOWLEDGE_BASE_PATH

logger = logging.getLogger("api")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

# ── Configuration ────────────────────────────────────────────────────────

KNOWLEDGE_BASE_PATH = os.environ.get("KNOWLEDGE_BASE_PATH", str(DEFAULT_KNOWLEDGE_BASE_PATH))
CONTACT_EMAIL = os.environ.get("CONTACT_EMAIL") or None
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", "1000"))


# ── Lifespan ────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown."""
    # ── Startup ──────────────────────────────────────────────────────
    logger.info("Starting CV Chat Assistant API...")

    try:
        app.state.index = KnowledgeIndex.from_file(KNOWLEDGE_BASE_PATH)
    except Exception as e:
        logger.error(f"Failed to load knowledge base from {KNOWLEDGE_BASE_PATH}: {e}")
        raise

    app.state.sessions = {}
    app.state.max_sessions = MAX_SESSIONS
    app.state.contact_email = CONTACT_EMAIL

    logger.info(f"API startup complete ({len(app.state.index.topics)} topics)")
    yield

    # ── Shutdown ─────────────────────────────────────────────────────
    logger.info(f"Shutting down API, dropping {len(app.state.sessions)} session(s)")
    app.state.sessions.clear()


# ── App ──────────────────────────────────────────────────────────────────

app = FastAPI(
    title="CV Chat Assistant",
    description="Style-aware portfolio assistant answering questions from a structured CV knowledge base",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)


# ── Health Checks ────────────────────────────────────────────────────────


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    index = request.app.state.index
    return {
        "status": "healthy" if index.is_loaded else "degraded",
        "topics": len(index.topics),
        "active_sessions": len(request.app.state.sessions),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))

"""
PDF Tutor - FastAPI Application Entry Point.

Feature-based modular architecture:
  Each feature in pdftutor/features/ has its own router, service, and schemas.
  Ingestion runs as a background task (pdftutor/background/).
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pdftutor.config import get_settings
from pdftutor.core.rate_limit import RateLimiter

# ── Feature Routers ──────────────────────────────────────
from pdftutor.features.chat.router import router as chat_router
from pdftutor.features.documents.router import router as documents_router
from pdftutor.features.quiz.router import router as quiz_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} starting...")
    logger.info(f"🤖 LLM Provider: {settings.LLM_PROVIDER} ({settings.LLM_MODEL})")
    logger.info(f"🧮 Embeddings: {settings.EMBEDDING_PROVIDER} ({settings.EMBEDDING_MODEL}, {settings.EMBEDDING_DIMENSIONS}d)")
    logger.info(f"🔗 Supabase: {settings.SUPABASE_URL[:40]}...")
    yield
    logger.info("👋 Shutting down...")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Chat with and get quizzed on your PDFs, with page/line citations",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Shared per-process state ─────────────────────────
    app.state.rate_limiter = RateLimiter(
        settings.CHAT_MIN_INTERVAL_MS,
        maxsize=settings.RATE_LIMIT_MAX_CALLERS,
    )

    # ── Register Feature Routers ─────────────────────────
    app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
    app.include_router(chat_router, prefix="/api/chat", tags=["Chat"])
    app.include_router(quiz_router, prefix="/api/quiz", tags=["Quiz"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()

"""
Main FastAPI application for the Glossa backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import close_db, init_db
from app.exceptions import setup_exception_handlers
from app.routers import annotations, articles, assistant, auth, gemini, health, images, paragraphs

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


def _check_ai_config() -> None:
    """Log which AI features are usable.  Never raises."""
    keys = settings.get_gemini_api_keys()
    if keys:
        logger.info("✓ Gemini configured with %d API key(s)", len(keys))
    else:
        logger.warning("⚠ No Gemini API keys configured; AI features will fail")

    if not settings.GEMINI_API_KEY_PAYING:
        logger.warning("⚠ GEMINI_API_KEY_PAYING not set; paragraph illustrations are disabled")
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("⚠ Cloudinary not configured; generated images cannot be stored")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting Glossa backend …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. AI providers (optional; logs warnings but continues)
    _check_ai_config()

    logger.info("=" * 60)
    logger.info("  Glossa backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down Glossa backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Glossa API",
    description=(
        "**Glossa** — AI-assisted reading and annotation of articles.\n\n"
        "Write articles, split them into paragraphs and sentences, and ask "
        "the assistant to translate, explain, annotate and illustrate them.\n\n"
        "Key endpoints:\n"
        "- `POST /api/auth/login` — start a session\n"
        "- `POST /api/articles` — create an article\n"
        "- `POST /api/articles/{id}/translate` — stream a translation (NDJSON)\n"
        "- `POST /api/articles/{id}/annotations/root` — word-root analysis\n"
        "- `POST /api/gemini` — inline sentence annotation\n"
        "- `POST /api/generate-paragraph-image` — paragraph illustration\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

setup_exception_handlers(app)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,      prefix="/api/health",   tags=["Health"])
app.include_router(auth.router,        prefix="/api/auth",     tags=["Auth"])
app.include_router(articles.router,    prefix="/api/articles", tags=["Articles"])
app.include_router(
    paragraphs.router, prefix="/api/articles/{article_id}/paragraphs", tags=["Paragraphs"]
)
app.include_router(
    annotations.router, prefix="/api/articles/{article_id}/annotations", tags=["Annotations"]
)
app.include_router(assistant.router,   prefix="/api/articles/{article_id}", tags=["Assistant"])
app.include_router(gemini.router,      prefix="/api/gemini",   tags=["Gemini"])
app.include_router(
    images.router, prefix="/api/generate-paragraph-image", tags=["Images"]
)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root: basic service info."""
    return {
        "name": "Glossa API",
        "version": "0.1.0",
        "description": "Reading and annotation backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "auth": "/api/auth",
            "articles": "/api/articles",
            "gemini": "/api/gemini",
            "images": "/api/generate-paragraph-image",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_engine.api.search import close_registry, get_registry
from catalog_engine.api.search import router as search_router
from catalog_engine.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    # Startup: open the configured document store eagerly so config errors surface early
    registry = get_registry()
    logger.info("Catalog search API started (%d sessions)", len(registry))

    yield
    # Shutdown: close the document store's HTTP client
    await close_registry()


app = FastAPI(
    title="Catalog Query Engine",
    description="Faceted search and pagination over a course catalog",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware (only for browser front ends listed in CORS_ORIGINS) ---
settings = get_settings()
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# --- Router includes ---
app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}

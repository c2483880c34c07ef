"""
Cinelog API - FastAPI application.

Provides endpoints for:
- Browsing the TMDb catalog and resolving movies into the local cache
- Personal lists (watched, watching, wishlist, favorites)
- Playlists
- Reviews and replies
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.deps import get_tmdb_config
from api.routers import lists, movies, playlists, reviews

logger = logging.getLogger(__name__)


def get_cors_origins() -> list[str]:
    """
    Get CORS allowed origins from environment.
    Set CORS_ALLOW_ORIGINS as comma-separated list of origins.
    Example: CORS_ALLOW_ORIGINS=http://localhost:5173,https://app.cinelog.example
    """
    origins_str = os.getenv("CORS_ALLOW_ORIGINS", "")
    if not origins_str:
        return []
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


def configure_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging()
    logger.info("Starting up Cinelog API...")
    config = get_tmdb_config()
    logger.info(
        f"TMDb base_url={config.base_url} timeout={config.timeout_seconds}s "
        f"auth={'bearer' if config.uses_bearer else 'api_key'}"
    )
    yield
    logger.info("Shutting down Cinelog API...")


app = FastAPI(
    title="Cinelog API",
    description="Backend API for Cinelog - movie reviews, lists and playlists",
    version="0.1.0",
    lifespan=lifespan,
)

# If no origins are configured, allow all origins but disable credentials.
cors_origins = get_cors_origins()
allow_credentials = len(cors_origins) > 0

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins if cors_origins else ["*"],
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(movies.router, prefix="/api/v1")
app.include_router(lists.router, prefix="/api/v1")
app.include_router(playlists.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "cinelog-backend"}


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}

"""
Map movie-resolution and TMDb errors onto HTTP responses.

Routers catch the library errors and re-raise the result of `to_http_exception(exc)`.
"""
from __future__ import annotations

import logging

from fastapi import HTTPException

from cinelog_backend.integrations.tmdb.client import (
    TmdbClientError,
    TmdbNetworkError,
    TmdbNotFoundError,
    TmdbRateLimitedError,
    TmdbUnauthorizedError,
)
from cinelog_backend.repositories.movies import MovieRepositoryError
from cinelog_backend.services.movie_resolver import (
    CatalogUnauthorizedError,
    CatalogUnavailableError,
    InvalidMovieIdentifierError,
    MovieNotFoundError,
)

logger = logging.getLogger(__name__)

CATALOG_CREDENTIALS_DETAIL = "Movie catalog credentials are invalid or missing"
CATALOG_UNAVAILABLE_DETAIL = "Movie catalog is temporarily unavailable. Please try again later."


def _unavailable(retry_after: float | None = None) -> HTTPException:
    headers = {"Retry-After": str(int(retry_after))} if retry_after else None
    return HTTPException(status_code=503, detail=CATALOG_UNAVAILABLE_DETAIL, headers=headers)


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidMovieIdentifierError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (MovieNotFoundError, TmdbNotFoundError)):
        return HTTPException(status_code=404, detail="Movie not found")
    if isinstance(exc, (CatalogUnauthorizedError, TmdbUnauthorizedError)):
        logger.error(f"Movie catalog credential error: {exc}")
        return HTTPException(status_code=502, detail=CATALOG_CREDENTIALS_DETAIL)
    if isinstance(exc, (CatalogUnavailableError, TmdbRateLimitedError)):
        return _unavailable(exc.retry_after)
    if isinstance(exc, TmdbNetworkError):
        return _unavailable()
    if isinstance(exc, TmdbClientError):
        logger.warning(f"Movie catalog error: {exc}")
        return HTTPException(status_code=502, detail="Movie catalog request failed")
    if isinstance(exc, MovieRepositoryError):
        logger.error(f"Movie cache error: {exc}")
        return HTTPException(status_code=502, detail="Database error while resolving movie")
    logger.exception("Unexpected error while resolving movie")
    return HTTPException(status_code=500, detail="Internal server error")

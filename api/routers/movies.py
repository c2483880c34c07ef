"""
Movie browse endpoints backed by TMDb, plus resolution into the local cache.

Browse/listing endpoints proxy TMDb and do not write to the cache. Detail and
cache endpoints go through the movie resolver.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel

from api.auth import CurrentUser
from api.deps import SupabaseClient, Resolver, Tmdb
from api.errors import to_http_exception
from cinelog_backend.integrations.tmdb.client import (
    FILTER_ENDPOINTS,
    TmdbClientError,
    extract_credits,
    transform_movie_data,
)
from cinelog_backend.models.movies import ByExternalId, ByLocalKey
from cinelog_backend.repositories.movies import MovieRepositoryError, find_movies_by_tmdb_ids
from cinelog_backend.services.movie_resolver import MovieResolutionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/movies", tags=["movies"])


# --- Pydantic models ---


class Movie(BaseModel):
    id: UUID
    tmdb_id: int
    title: str
    overview: str
    poster: str
    backdrop: str
    release_date: str | None
    genres: list[str]
    rating: float
    cached_at: str | None


class Person(BaseModel):
    name: str | None
    character: str | None = None
    profile_path: str | None = None


class MovieDetail(Movie):
    director: Person | None = None
    actors: list[Person] = []


class CatalogMovie(BaseModel):
    """A TMDb listing item; `id` is set when the movie is already cached."""

    tmdb_id: int
    title: str
    overview: str
    poster: str
    backdrop: str
    release_date: str | None
    genres: list[str]
    rating: float
    cached: bool = False
    id: UUID | None = None


class MoviePage(BaseModel):
    movies: list[CatalogMovie]
    page: int
    total_pages: int
    total_results: int | None = None


class CacheMovieRequest(BaseModel):
    tmdb_id: int


# --- Helpers ---


def _catalog_movies(payload: dict[str, Any]) -> list[dict[str, Any]]:
    results = payload.get("results")
    movies: list[dict[str, Any]] = []
    for item in results if isinstance(results, list) else []:
        if not isinstance(item, dict):
            continue
        try:
            movies.append(asdict(transform_movie_data(item)))
        except TmdbClientError:
            continue
    return movies


def _movie_page(payload: dict[str, Any]) -> dict[str, Any]:
    page = payload.get("page")
    total_pages = payload.get("total_pages")
    return {
        "movies": _catalog_movies(payload),
        "page": page if isinstance(page, int) else 1,
        "total_pages": total_pages if isinstance(total_pages, int) else 0,
        "total_results": payload.get("total_results") if isinstance(payload.get("total_results"), int) else None,
    }


def _call_tmdb(fn, *args, **kwargs) -> dict[str, Any]:  # noqa: ANN001
    try:
        return fn(*args, **kwargs)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TmdbClientError as exc:
        raise to_http_exception(exc) from exc


# --- Catalog endpoints ---


@router.get("/search", response_model=MoviePage)
def search_movies(
    db: SupabaseClient,
    tmdb: Tmdb,
    query: str = Query(min_length=1),
    page: int = Query(default=1, ge=1, le=500),
) -> dict:
    """Search TMDb and flag results that are already in the local cache."""
    result = _movie_page(_call_tmdb(tmdb.search_movies, query, page=page))

    try:
        cached = find_movies_by_tmdb_ids(db, [m["tmdb_id"] for m in result["movies"]])
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc

    for movie in result["movies"]:
        row = cached.get(movie["tmdb_id"])
        movie["cached"] = row is not None
        movie["id"] = row["id"] if row else None
    return result


@router.get("/trending", response_model=MoviePage)
def trending_movies(
    tmdb: Tmdb,
    time_window: str = Query(default="day"),
    page: int = Query(default=1, ge=1, le=500),
) -> dict:
    return _movie_page(_call_tmdb(tmdb.fetch_trending, time_window, page=page))


@router.get("/popular", response_model=MoviePage)
def popular_movies(tmdb: Tmdb, page: int = Query(default=1, ge=1, le=500)) -> dict:
    return _movie_page(_call_tmdb(tmdb.fetch_popular, page=page))


@router.get("/genres")
def list_genres(tmdb: Tmdb) -> dict:
    try:
        genres = tmdb.fetch_genres()
    except TmdbClientError as exc:
        raise to_http_exception(exc) from exc
    return {"genres": genres}


@router.get("/providers")
def list_providers(tmdb: Tmdb, region: str = Query(default="US", min_length=2, max_length=2)) -> dict:
    """Streaming providers for a region. Upstream failures yield an empty list."""
    try:
        providers = tmdb.fetch_watch_providers(region=region)
    except TmdbClientError as exc:
        logger.warning(f"Failed to fetch watch providers: {exc}")
        providers = []
    return {
        "providers": [
            {
                "provider_id": p.get("provider_id"),
                "provider_name": p.get("provider_name"),
                "logo_path": p.get("logo_path"),
            }
            for p in providers
        ]
    }


@router.get("/genre/{genre_id}", response_model=MoviePage)
def movies_by_genre(tmdb: Tmdb, genre_id: int, page: int = Query(default=1, ge=1, le=500)) -> dict:
    return _movie_page(_call_tmdb(tmdb.discover_by_genre, genre_id, page=page))


@router.get("/year/{year}", response_model=MoviePage)
def movies_by_year(tmdb: Tmdb, year: int, page: int = Query(default=1, ge=1, le=500)) -> dict:
    return _movie_page(_call_tmdb(tmdb.discover_by_year, year, page=page))


@router.get("/provider/{provider_id}", response_model=MoviePage)
def movies_by_provider(tmdb: Tmdb, provider_id: int, page: int = Query(default=1, ge=1, le=500)) -> dict:
    return _movie_page(_call_tmdb(tmdb.discover_by_provider, provider_id, page=page))


@router.get("/filter/{filter_type}", response_model=MoviePage)
def movies_by_filter(tmdb: Tmdb, filter_type: str, page: int = Query(default=1, ge=1, le=500)) -> dict:
    if filter_type not in FILTER_ENDPOINTS:
        raise HTTPException(
            status_code=400, detail=f"Invalid filter type. Must be one of: {', '.join(FILTER_ENDPOINTS)}"
        )
    return _movie_page(_call_tmdb(tmdb.fetch_by_filter, filter_type, page=page))


# --- Cache-backed endpoints ---


@router.post("/cache", response_model=Movie)
def cache_movie(body: CacheMovieRequest, resolver: Resolver, user: CurrentUser, response: Response) -> dict:
    """
    Make sure a TMDb movie is in the local cache.
    Requires authentication. Returns 201 when the row was created.
    """
    try:
        resolved = resolver.resolve(ByExternalId(body.tmdb_id))
    except (MovieResolutionError, MovieRepositoryError) as exc:
        raise to_http_exception(exc) from exc

    response.status_code = 201 if resolved.created else 200
    return resolved.movie.to_dict()


@router.get("/local/{movie_id}", response_model=Movie)
def get_cached_movie(movie_id: UUID, resolver: Resolver) -> dict:
    """Get a cached movie by its local id."""
    try:
        resolved = resolver.resolve(ByLocalKey(movie_id))
    except (MovieResolutionError, MovieRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return resolved.movie.to_dict()


@router.get("/{tmdb_id}", response_model=MovieDetail)
def get_movie(tmdb_id: int, resolver: Resolver) -> dict:
    """
    Get a movie by TMDb id with director and top-billed cast.

    Always refreshes from TMDb (credits are not cached); falls back to the cached
    copy without credits when TMDb is unreachable.
    """
    try:
        resolved = resolver.resolve(ByExternalId(tmdb_id), refresh=True)
    except (MovieResolutionError, MovieRepositoryError) as exc:
        raise to_http_exception(exc) from exc

    detail = resolved.movie.to_dict()
    if resolved.details is not None:
        detail.update(extract_credits(resolved.details))
    return detail

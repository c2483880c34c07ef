"""
Movie resolution against the local `core.movies` cache.

Every social write that references a movie goes through `MovieResolver.resolve` so
the row it points at is guaranteed to exist. Resolution order:

1. local key, when given and present in the cache
2. TMDb id lookup in the cache
3. on a hit with `refresh=True`, re-fetch from TMDb and overwrite the cached fields;
   a failed refresh returns the cached copy unchanged
4. on a miss, fetch from TMDb and insert; if a concurrent writer won the insert, the
   unique constraint on `tmdb_id` rejects ours and we re-read the winner's row

Cached rows are permanent: there is no TTL and no eviction.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from supabase import Client

from cinelog_backend.integrations.tmdb.client import (
    TmdbClientError,
    TmdbNotFoundError,
    TmdbRateLimitedError,
    TmdbUnauthorizedError,
    transform_movie_data,
)
from cinelog_backend.models.movies import MovieLookup, MovieRecord, MovieRef
from cinelog_backend.repositories import movies as movie_repo

logger = logging.getLogger(__name__)

# `core.movies.tmdb_id` is a Postgres integer.
MAX_TMDB_ID = 2_147_483_647


class MovieResolutionError(RuntimeError):
    pass


class InvalidMovieIdentifierError(MovieResolutionError):
    pass


class MovieNotFoundError(MovieResolutionError):
    pass


class CatalogUnavailableError(MovieResolutionError):
    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class CatalogUnauthorizedError(MovieResolutionError):
    """The TMDb credential is missing or rejected; an operator has to fix configuration."""


class MovieCatalog(Protocol):
    def fetch_movie_details(self, tmdb_id: int, *, append_credits: bool = True) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ResolvedMovie:
    movie: MovieRecord
    created: bool = False
    refreshed: bool = False
    # Raw TMDb payload (with credits) when this resolution fetched upstream.
    details: dict[str, Any] | None = None


def validate_ref(lookup: MovieLookup | MovieRef) -> MovieRef:
    """
    Normalize and validate a lookup before any I/O.
    """

    try:
        ref = MovieRef.of(lookup)
    except TypeError as exc:
        raise InvalidMovieIdentifierError(str(exc)) from exc

    local_key = ref.local_key
    if local_key is not None and not isinstance(local_key, UUID):
        try:
            local_key = UUID(str(local_key))
        except ValueError as exc:
            raise InvalidMovieIdentifierError(f"Invalid movie id: {ref.local_key!r}") from exc

    tmdb_id = ref.tmdb_id
    if tmdb_id is not None and (
        isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int) or not 0 < tmdb_id <= MAX_TMDB_ID
    ):
        raise InvalidMovieIdentifierError(f"TMDb id must be a positive 32-bit integer, got {tmdb_id!r}")

    if local_key is None and tmdb_id is None:
        raise InvalidMovieIdentifierError("A movie id or a TMDb id is required.")
    return MovieRef(local_key=local_key, tmdb_id=tmdb_id)


class MovieResolver:
    def __init__(self, db: Client, catalog: MovieCatalog) -> None:
        self.db = db
        self.catalog = catalog

    def resolve(
        self,
        lookup: MovieLookup | MovieRef,
        *,
        refresh: bool = False,
        assume_uncached: bool = False,
    ) -> ResolvedMovie:
        """
        Return the cached movie for `lookup`, fetching and inserting it on a miss.

        `refresh=True` re-fetches a cached movie (needed for credits, which are not
        stored). `assume_uncached=True` is a caller hint that skips the cache lookup
        by TMDb id; the insert conflict path still keeps the table consistent.
        """

        ref = validate_ref(lookup)

        cached: dict[str, Any] | None = None
        if ref.local_key is not None:
            cached = movie_repo.get_movie_by_id(self.db, ref.local_key)
            if cached is None and ref.tmdb_id is None:
                raise MovieNotFoundError(f"Movie {ref.local_key} not found.")

        if cached is None and not assume_uncached:
            cached = movie_repo.find_movie_by_tmdb_id(self.db, ref.tmdb_id)

        if cached is not None:
            return self._refresh(cached) if refresh else ResolvedMovie(movie=MovieRecord.from_row(cached))

        return self._fetch_and_insert(ref.tmdb_id)

    def resolve_many(self, lookups: Iterable[MovieLookup | MovieRef]) -> list[MovieRecord]:
        """
        Resolve a batch (playlist edits), skipping movies that cannot be resolved.

        Results are de-duplicated by local key and keep input order. Credential
        errors still propagate since every remaining lookup would fail the same way.
        """

        movies: list[MovieRecord] = []
        seen: set[UUID] = set()
        for lookup in lookups:
            try:
                resolved = self.resolve(lookup)
            except (InvalidMovieIdentifierError, MovieNotFoundError, CatalogUnavailableError) as exc:
                logger.warning(f"Skipping unresolvable movie {lookup!r}: {exc}")
                continue
            if resolved.movie.id in seen:
                continue
            seen.add(resolved.movie.id)
            movies.append(resolved.movie)
        return movies

    def _refresh(self, cached: dict[str, Any]) -> ResolvedMovie:
        tmdb_id = int(cached["tmdb_id"])
        try:
            details = self.catalog.fetch_movie_details(tmdb_id)
            upsert = transform_movie_data(details)
        except TmdbUnauthorizedError as exc:
            logger.error(f"TMDb credential rejected while refreshing tmdb_id={tmdb_id}; serving cached copy: {exc}")
            return ResolvedMovie(movie=MovieRecord.from_row(cached))
        except TmdbClientError as exc:
            logger.warning(f"TMDb refresh failed for tmdb_id={tmdb_id}; serving cached copy: {exc}")
            return ResolvedMovie(movie=MovieRecord.from_row(cached))

        row = movie_repo.update_movie(self.db, cached["id"], upsert)
        return ResolvedMovie(movie=MovieRecord.from_row(row), refreshed=True, details=details)

    def _fetch_and_insert(self, tmdb_id: int | None) -> ResolvedMovie:
        if tmdb_id is None:
            raise MovieNotFoundError("Movie not found.")

        try:
            details = self.catalog.fetch_movie_details(tmdb_id)
            upsert = transform_movie_data(details)
        except TmdbNotFoundError as exc:
            raise MovieNotFoundError(f"Movie with TMDb id {tmdb_id} not found.") from exc
        except TmdbUnauthorizedError as exc:
            logger.error(f"TMDb credential rejected while resolving tmdb_id={tmdb_id}: {exc}")
            raise CatalogUnauthorizedError(str(exc)) from exc
        except TmdbRateLimitedError as exc:
            raise CatalogUnavailableError(str(exc), retry_after=exc.retry_after) from exc
        except TmdbClientError as exc:
            raise CatalogUnavailableError(str(exc)) from exc

        try:
            row = movie_repo.insert_movie(self.db, upsert)
        except movie_repo.MovieCacheConflictError:
            row = movie_repo.find_movie_by_tmdb_id(self.db, tmdb_id)
            if row is None:
                raise movie_repo.MovieRepositoryError(
                    f"core.movies reported a conflict for tmdb_id={tmdb_id} but the row is not readable."
                )
            logger.info(f"Lost insert race for tmdb_id={tmdb_id}; using existing row {row.get('id')}")
            return ResolvedMovie(movie=MovieRecord.from_row(row), details=details)

        logger.info(f"Cached movie tmdb_id={tmdb_id} as {row.get('id')}")
        return ResolvedMovie(movie=MovieRecord.from_row(row), created=True, details=details)

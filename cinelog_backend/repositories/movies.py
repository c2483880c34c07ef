from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from supabase import Client

from cinelog_backend.db.postgrest_errors import is_missing_relation_error, is_unique_violation
from cinelog_backend.models.movies import MovieUpsert

MOVIE_SELECT_FIELDS = "id,tmdb_id,title,overview,poster,backdrop,release_date,genres,rating,cached_at"


class MovieRepositoryError(RuntimeError):
    pass


class MovieCacheConflictError(MovieRepositoryError):
    """
    Another writer already inserted a row for this `tmdb_id`.

    Raised instead of overwriting; callers re-read the existing row.
    """

    def __init__(self, tmdb_id: int) -> None:
        super().__init__(f"core.movies already has a row for tmdb_id={tmdb_id}.")
        self.tmdb_id = tmdb_id


def assert_core_movies_table_exists(db: Client) -> None:
    """
    Fail fast with a clear error if `core.movies` is missing in Supabase.
    """

    def help_message() -> str:
        return (
            "Database table `core.movies` is missing. "
            "Run `supabase db push` to apply migrations (see `supabase/migrations/0001_core_movies.sql`), "
            "then retry."
        )

    try:
        response = db.schema("core").table("movies").select("id").limit(1).execute()
    except Exception as exc:
        if is_missing_relation_error(exc):
            raise MovieRepositoryError(help_message()) from exc
        raise MovieRepositoryError(f"Supabase error during core.movies preflight: {exc}") from exc

    error = getattr(response, "error", None)
    if not error:
        return
    if is_missing_relation_error(error):
        raise MovieRepositoryError(help_message())
    raise MovieRepositoryError(f"Supabase error during core.movies preflight: {error}")


def _raise_for_supabase_error(response: Any, context: str) -> None:
    if hasattr(response, "error") and response.error:
        raise MovieRepositoryError(f"Supabase error during {context}: {response.error}")


def _first_row(response: Any) -> dict[str, Any] | None:
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    return None


def _now_utc_iso() -> str:
    return datetime.now(UTC).isoformat()


def _serialize_movie(movie: MovieUpsert, *, cached_at: str) -> dict[str, Any]:
    payload = asdict(movie)
    payload["genres"] = list(movie.genres)
    payload["cached_at"] = cached_at
    return payload


def get_movie_by_id(db: Client, movie_id: UUID | str) -> dict[str, Any] | None:
    try:
        response = (
            db.schema("core")
            .table("movies")
            .select(MOVIE_SELECT_FIELDS)
            .eq("id", str(movie_id))
            .limit(1)
            .execute()
        )
    except Exception as exc:
        raise MovieRepositoryError(f"Supabase error reading movie id={movie_id}: {exc}") from exc
    _raise_for_supabase_error(response, "reading movie by id")
    return _first_row(response)


def find_movie_by_tmdb_id(db: Client, tmdb_id: int) -> dict[str, Any] | None:
    try:
        response = (
            db.schema("core")
            .table("movies")
            .select(MOVIE_SELECT_FIELDS)
            .eq("tmdb_id", int(tmdb_id))
            .limit(1)
            .execute()
        )
    except Exception as exc:
        raise MovieRepositoryError(f"Supabase error reading movie tmdb_id={tmdb_id}: {exc}") from exc
    _raise_for_supabase_error(response, "finding movie by tmdb id")
    return _first_row(response)


def find_movies_by_tmdb_ids(db: Client, tmdb_ids: Iterable[int]) -> dict[int, dict[str, Any]]:
    ids = sorted({int(i) for i in tmdb_ids})
    if not ids:
        return {}
    try:
        response = db.schema("core").table("movies").select(MOVIE_SELECT_FIELDS).in_("tmdb_id", ids).execute()
    except Exception as exc:
        raise MovieRepositoryError(f"Supabase error listing cached movies: {exc}") from exc
    _raise_for_supabase_error(response, "listing cached movies by tmdb id")
    data = response.data or []
    return {int(row["tmdb_id"]): row for row in data if isinstance(row, dict) and "tmdb_id" in row}


def find_movies_by_ids(db: Client, movie_ids: Iterable[UUID | str]) -> dict[str, dict[str, Any]]:
    ids = sorted({str(i) for i in movie_ids})
    if not ids:
        return {}
    try:
        response = db.schema("core").table("movies").select(MOVIE_SELECT_FIELDS).in_("id", ids).execute()
    except Exception as exc:
        raise MovieRepositoryError(f"Supabase error listing movies by id: {exc}") from exc
    _raise_for_supabase_error(response, "listing movies by id")
    data = response.data or []
    return {str(row["id"]): row for row in data if isinstance(row, dict) and "id" in row}


def insert_movie(db: Client, movie: MovieUpsert) -> dict[str, Any]:
    """
    Insert a new cached movie.

    Raises `MovieCacheConflictError` when the `tmdb_id` unique constraint rejects the row.
    """

    payload = _serialize_movie(movie, cached_at=_now_utc_iso())
    try:
        response = db.schema("core").table("movies").insert(payload).execute()
    except Exception as exc:
        if is_unique_violation(exc):
            raise MovieCacheConflictError(movie.tmdb_id) from exc
        raise MovieRepositoryError(f"Supabase error inserting movie tmdb_id={movie.tmdb_id}: {exc}") from exc

    error = getattr(response, "error", None)
    if error:
        if is_unique_violation(error):
            raise MovieCacheConflictError(movie.tmdb_id)
        raise MovieRepositoryError(f"Supabase error inserting movie tmdb_id={movie.tmdb_id}: {error}")

    row = _first_row(response)
    if row is None:
        raise MovieRepositoryError("Supabase insert returned no data for movie.")
    return row


def update_movie(db: Client, movie_id: UUID | str, movie: MovieUpsert) -> dict[str, Any]:
    """
    Overwrite the descriptive fields of a cached movie and bump `cached_at`.

    `id` and `tmdb_id` never change.
    """

    patch = _serialize_movie(movie, cached_at=_now_utc_iso())
    patch.pop("tmdb_id", None)
    try:
        response = db.schema("core").table("movies").update(patch).eq("id", str(movie_id)).execute()
    except Exception as exc:
        raise MovieRepositoryError(f"Supabase error updating movie id={movie_id}: {exc}") from exc
    _raise_for_supabase_error(response, "updating movie")

    row = _first_row(response)
    if row is None:
        raise MovieRepositoryError("Supabase update returned no data for movie.")
    return row


def upsert_movie(db: Client, movie: MovieUpsert) -> tuple[dict[str, Any], bool]:
    """
    Insert-or-update keyed by `tmdb_id`. Returns `(row, created)`.

    A concurrent insert of the same `tmdb_id` surfaces as `MovieCacheConflictError`.
    """

    existing = find_movie_by_tmdb_id(db, movie.tmdb_id)
    if existing is not None:
        return update_movie(db, existing["id"], movie), False
    return insert_movie(db, movie), True


def attach_movies(
    db: Client,
    rows: list[dict[str, Any]],
    *,
    key: str = "movie_id",
    field: str = "movie",
) -> list[dict[str, Any]]:
    """
    Populate `row[field]` with the cached movie referenced by `row[key]` (in place).
    """

    movies = find_movies_by_ids(db, [row[key] for row in rows if row.get(key)])
    for row in rows:
        row[field] = movies.get(str(row.get(key)))
    return rows

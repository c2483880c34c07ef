"""
Repository layer for DB access patterns.
"""

from cinelog_backend.repositories.movies import (
    MovieCacheConflictError,
    MovieRepositoryError,
    find_movie_by_tmdb_id,
    get_movie_by_id,
    insert_movie,
    update_movie,
    upsert_movie,
)

__all__ = [
    "MovieCacheConflictError",
    "MovieRepositoryError",
    "find_movie_by_tmdb_id",
    "get_movie_by_id",
    "insert_movie",
    "update_movie",
    "upsert_movie",
]

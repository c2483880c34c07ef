"""
Request-side movie references.

A reference names the cached row (`movie_id`) and/or the TMDb movie (`tmdb_id`)
as separate typed fields, so the server never guesses an id's kind from its shape.
"""
from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel

from api.errors import to_http_exception
from cinelog_backend.models.movies import MovieRecord, MovieRef
from cinelog_backend.repositories.movies import MovieRepositoryError
from cinelog_backend.services.movie_resolver import MovieResolutionError, MovieResolver


class MovieRefIn(BaseModel):
    movie_id: UUID | None = None
    tmdb_id: int | None = None

    def to_ref(self) -> MovieRef:
        return MovieRef(local_key=self.movie_id, tmdb_id=self.tmdb_id)


def resolve_movie_or_raise(resolver: MovieResolver, ref: MovieRefIn) -> MovieRecord:
    try:
        return resolver.resolve(ref.to_ref()).movie
    except (MovieResolutionError, MovieRepositoryError) as exc:
        raise to_http_exception(exc) from exc

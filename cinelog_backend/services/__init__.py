"""
Application services built on the repositories and integrations.
"""

from cinelog_backend.services.movie_resolver import (
    CatalogUnauthorizedError,
    CatalogUnavailableError,
    InvalidMovieIdentifierError,
    MovieNotFoundError,
    MovieResolutionError,
    MovieResolver,
    ResolvedMovie,
)

__all__ = [
    "CatalogUnauthorizedError",
    "CatalogUnavailableError",
    "InvalidMovieIdentifierError",
    "MovieNotFoundError",
    "MovieResolutionError",
    "MovieResolver",
    "ResolvedMovie",
]

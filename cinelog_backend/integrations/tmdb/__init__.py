"""
TMDb integration clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cinelog_backend.integrations.tmdb.client import (
        TmdbClient,
        TmdbClientError,
        TmdbConfig,
        TmdbNetworkError,
        TmdbNotFoundError,
        TmdbRateLimitedError,
        TmdbUnauthorizedError,
        extract_credits,
        transform_movie_data,
    )

__all__ = [
    "TmdbClient",
    "TmdbClientError",
    "TmdbConfig",
    "TmdbNetworkError",
    "TmdbNotFoundError",
    "TmdbRateLimitedError",
    "TmdbUnauthorizedError",
    "extract_credits",
    "transform_movie_data",
]


def __getattr__(name: str):
    if name in __all__:
        from cinelog_backend.integrations.tmdb import client

        return getattr(client, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

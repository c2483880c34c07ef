"""
Domain models shared across the API, scripts and services.
"""

from cinelog_backend.models.movies import (
    ByExternalId,
    ByLocalKey,
    MovieRecord,
    MovieRef,
    MovieUpsert,
)

__all__ = [
    "ByExternalId",
    "ByLocalKey",
    "MovieRecord",
    "MovieRef",
    "MovieUpsert",
]

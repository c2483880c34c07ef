"""
Dependency injection for Supabase, TMDb and the movie resolver.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, HTTPException
from supabase import Client, create_client

from cinelog_backend.integrations.tmdb.client import TmdbClient, TmdbConfig
from cinelog_backend.services.movie_resolver import MovieResolver
from cinelog_backend.utils.env import load_env

load_env()

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase_url() -> str:
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_URL environment variable is not set")
    return url


@lru_cache
def get_supabase_anon_key() -> str:
    key = os.getenv("SUPABASE_ANON_KEY")
    if not key:
        raise RuntimeError("SUPABASE_ANON_KEY environment variable is not set")
    return key


@lru_cache
def get_supabase_service_key() -> str:
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY environment variable is not set")
    return key


def get_supabase_client() -> Client:
    """
    Returns a Supabase client using the anon key (for public read operations).
    """
    return create_client(get_supabase_url(), get_supabase_anon_key())


def get_supabase_admin_client() -> Client:
    """
    Returns a Supabase client using the service role key (bypasses RLS).
    Used for writes to the shared movie cache.
    """
    return create_client(get_supabase_url(), get_supabase_service_key())


@lru_cache
def get_tmdb_config() -> TmdbConfig:
    config = TmdbConfig.from_env()
    if not config.credential:
        logger.warning("TMDB_API_KEY is not set; catalog requests will fail until it is configured.")
    return config


@lru_cache
def get_tmdb_client() -> TmdbClient:
    """
    One TMDb client (and HTTP session) per process.
    """
    return TmdbClient(get_tmdb_config())


# Type aliases for dependency injection
SupabaseClient = Annotated[Client, Depends(get_supabase_client)]
SupabaseAdminClient = Annotated[Client, Depends(get_supabase_admin_client)]
Tmdb = Annotated[TmdbClient, Depends(get_tmdb_client)]


def get_movie_resolver(db: SupabaseAdminClient, tmdb: Tmdb) -> MovieResolver:
    return MovieResolver(db, tmdb)


Resolver = Annotated[MovieResolver, Depends(get_movie_resolver)]


def raise_for_supabase_error(response: Any, context: str = "database operation") -> None:
    """
    Check a Supabase response for errors and raise appropriate HTTP exceptions.

    Args:
        response: The response object from a Supabase query
        context: Description of the operation for error messages

    Raises:
        HTTPException: 502 for Supabase connectivity/server errors
    """
    if hasattr(response, "error") and response.error:
        error_msg = str(response.error)
        logger.error(f"Supabase error during {context}: {error_msg}")
        # Don't leak internal error details to client
        raise HTTPException(status_code=502, detail=f"Database error during {context}")


def require_single_result(response: Any, entity_name: str = "Resource") -> dict:
    """
    Ensure a Supabase response contains exactly one result.

    Accepts both `.single()` responses (dict) and `.limit(1)` responses (list).

    Raises:
        HTTPException: 404 if no result found, 502 for Supabase errors
    """
    raise_for_supabase_error(response, f"fetching {entity_name.lower()}")

    data = response.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not data:
        raise HTTPException(status_code=404, detail=f"{entity_name} not found")

    return data


def get_list_result(response: Any, context: str = "listing") -> list:
    """
    Extract list results from a Supabase response with error handling.

    Raises:
        HTTPException: 502 for Supabase errors
    """
    raise_for_supabase_error(response, context)
    return response.data or []

"""
Authentication utilities for FastAPI.

Users sign in through Supabase Auth; the API only validates the access token.
Reviews, list entries and playlists are written with a user-scoped client so RLS
enforces ownership. The movie cache is the one shared table and is written with
the service-role client (see `api.deps.get_movie_resolver`).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from supabase import Client, create_client

from api.deps import get_supabase_anon_key, get_supabase_url

logger = logging.getLogger(__name__)


def get_bearer_token(request: Request) -> str | None:
    """
    Extract Bearer token from Authorization header.

    Returns None if no token is present.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        return None
    return token.strip()


async def get_current_user(request: Request) -> dict | None:
    """
    Resolve the Supabase user for the request's access token.

    Returns None when there is no token or Supabase rejects it, so public
    endpoints can still serve anonymous callers.
    """
    token = get_bearer_token(request)
    if not token:
        return None

    try:
        client = create_client(get_supabase_url(), get_supabase_anon_key())
        user_response = client.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Failed to validate token: {e}")
        return None

    if not user_response or not user_response.user:
        return None
    return {
        "id": str(user_response.user.id),
        "email": user_response.user.email,
        "role": user_response.user.role,
        "token": token,
    }


async def require_user(request: Request) -> dict:
    """
    Dependency that requires a valid authenticated user.

    Raises 401 if no token or invalid token.
    """
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Please provide a valid access token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_user_supabase_client(user: dict) -> Client:
    """
    Returns a Supabase client scoped to the user's token (RLS applies).
    """
    client = create_client(get_supabase_url(), get_supabase_anon_key())
    client.postgrest.auth(user["token"])
    return client


CurrentUser = Annotated[dict, Depends(require_user)]
OptionalUser = Annotated[dict | None, Depends(get_current_user)]
